"""
DualScribe - Push-to-talk dictation that races two speech recognizers.

This package provides:
- Microphone capture with live forwarding to a streaming recognizer
- Resampling to 16kHz mono for the local models
- A race between a fast streaming engine (Parakeet MLX) and a slower,
  more accurate batch engine (MLX Whisper); the first non-empty text wins
- Background reconciliation: a differing batch result lands on the clipboard
- A small session state machine that settles back to idle after each run

Main entry point: python -m dualscribe
"""

__version__ = "1.0.0"
