"""
Text delivery on macOS.

The committed transcription is pasted into whatever app has focus, with the
user's clipboard put back afterwards. A refinement only replaces the
clipboard, so the user can paste it over the first result if they want.
"""

import subprocess
import time
from typing import List, Optional, Protocol


COMMAND_TIMEOUT = 2.0

PASTE_SCRIPT = 'tell application "System Events" to keystroke "v" using command down'


class OutputSink(Protocol):
    def inject_primary(self, text: str) -> None:
        """Deliver committed text to the focused application."""
        ...

    def publish_refinement(self, text: str) -> None:
        """Offer a better transcription without touching the focused app."""
        ...


def _run(args: List[str], stdin: Optional[str] = None) -> Optional[bytes]:
    """Run a macOS helper, returning stdout or None if it could not run."""
    try:
        result = subprocess.run(
            args,
            input=stdin.encode("utf-8") if stdin is not None else None,
            capture_output=True,
            timeout=COMMAND_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as e:
        print(f"[Output] {args[0]} failed: {e}")
        return None
    return result.stdout


def _escape_for_applescript(text: str) -> str:
    """Quote text for use inside an AppleScript string literal."""
    replacements = [("\\", "\\\\"), ('"', '\\"'), ("\r", "\\r"), ("\n", "\\n"), ("\t", "\\t")]
    for old, new in replacements:
        text = text.replace(old, new)
    return text


def copy_to_clipboard(text: str) -> None:
    if text:
        _run(["pbcopy"], stdin=text)


def get_clipboard() -> str:
    out = _run(["pbpaste"])
    return out.decode("utf-8", errors="replace") if out else ""


def paste_text(text: str, restore_delay: float = 0.2) -> None:
    """
    Paste text into the focused application with Cmd+V.

    The previous clipboard contents are restored after restore_delay so
    the target app has time to read the pasteboard.
    """
    if not text:
        return

    saved = get_clipboard()
    copy_to_clipboard(text)
    time.sleep(0.05)  # pasteboard update is asynchronous

    _run(["osascript", "-e", PASTE_SCRIPT])

    time.sleep(restore_delay)
    if saved:
        copy_to_clipboard(saved)


def notify(message: str, title: str = "DualScribe") -> None:
    """Post a Notification Center banner."""
    script = 'display notification "{}" with title "{}"'.format(
        _escape_for_applescript(message), _escape_for_applescript(title)
    )
    _run(["osascript", "-e", script])


def play_busy_sound() -> None:
    """Audible cue that a start request was refused."""
    _run(["afplay", "/System/Library/Sounds/Basso.aiff"])


class SystemOutputSink:
    """OutputSink backed by the macOS pasteboard and System Events."""

    def __init__(self, notify_refinements: bool = True):
        self.notify_refinements = notify_refinements

    def inject_primary(self, text: str) -> None:
        paste_text(text)
        print(f"[Output] \"{text}\"")

    def publish_refinement(self, text: str) -> None:
        copy_to_clipboard(text)
        print(f"[Output] Refinement on clipboard: \"{text}\"")
        if self.notify_refinements:
            notify("Refined transcription copied to clipboard")
