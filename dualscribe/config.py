"""
Settings for one DualScribe run.

Precedence, lowest first: built-in defaults, ./settings.json,
~/.dualscribe/settings.json, DUALSCRIBE_* environment variables.
The coordinator and engines are built from an immutable ConfigSnapshot.
"""

from dataclasses import fields
from pathlib import Path
from typing import Any, Dict, List
import json
import os

from .types import ConfigSnapshot


DATA_DIR = Path.home() / ".dualscribe"

DEFAULT_CONFIG: Dict[str, Any] = {
    # Capture
    "input_device": "",  # name or part of one; empty = system default
    "blocksize": 1024,

    # Streaming engine
    "streaming_model": "mlx-community/parakeet-tdt-0.6b-v3",
    "streaming_context_size": 256,
    "streaming_timeout": 1.5,

    # Batch engine
    "batch_model_path": str(DATA_DIR / "models" / "whisper-small.en-mlx"),
    "batch_language": "en",

    # Seconds a finished session stays visible before returning to idle
    "settle_delay": 2.0,

    # Hotkey
    "trigger_key": "alt_r",
    "input_mode": "hold",
    "toggle_mode_timeout": 600.0,

    "metrics_enabled": True,
}

INPUT_MODES = ("hold", "toggle")

ENV_OVERRIDES = {
    "DUALSCRIBE_INPUT_DEVICE": "input_device",
    "DUALSCRIBE_MODEL_PATH": "batch_model_path",
    "DUALSCRIBE_STREAMING_MODEL": "streaming_model",
}

# Keys written back by save_settings()
USER_SETTINGS = ("input_device", "batch_model_path", "trigger_key", "input_mode")


def _coerce(default, value):
    """Convert value to the type of default. "false"/"0"/"no" are False."""
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes", "on")
        return bool(value)
    return type(default)(value)


class Config:
    """
    Mutable settings holder.

    Usage:
        config = Config.load()
        snapshot = config.snapshot()
    """

    def __init__(self):
        self.__dict__.update(DEFAULT_CONFIG)
        self.data_dir: Path = DATA_DIR
        self.settings_file: Path = self.data_dir / "settings.json"
        self.metrics_file: Path = self.data_dir / "metrics.jsonl"

    @classmethod
    def load(cls) -> "Config":
        config = cls()
        config._ensure_data_dir()
        for path in config.settings_layers():
            if path.exists():
                config._apply_settings_file(path)
        config._apply_env()
        return config

    def settings_layers(self) -> List[Path]:
        """settings.json files in the order they are applied."""
        return [Path("settings.json"), self.settings_file]

    def _ensure_data_dir(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            print(f"[Config] Cannot create {self.data_dir}: {e}")

    def _apply_env(self) -> None:
        for env_key, name in ENV_OVERRIDES.items():
            value = os.getenv(env_key)
            if value:
                self._set(name, value, source=env_key)

    def _apply_settings_file(self, path: Path) -> None:
        try:
            data = json.loads(path.read_text())
        except (OSError, ValueError) as e:
            print(f"[Config] Error loading {path}: {e}")
            return

        if not isinstance(data, dict):
            print(f"[Config] Error loading {path}: expected a JSON object")
            return

        for name, value in data.items():
            if name in DEFAULT_CONFIG:
                self._set(name, value, source=str(path))

    def _set(self, name: str, value, source: str) -> None:
        """Assign one setting, keeping the current value if it won't convert."""
        try:
            value = _coerce(DEFAULT_CONFIG[name], value)
        except (TypeError, ValueError):
            print(f"[Config] Ignoring {name}={value!r} from {source}")
            return
        if name == "input_mode" and value not in INPUT_MODES:
            print(f"[Config] Unknown input_mode {value!r} from {source}, keeping {self.input_mode!r}")
            return
        setattr(self, name, value)

    def save_settings(self) -> None:
        """Persist USER_SETTINGS to ~/.dualscribe/settings.json."""
        self._ensure_data_dir()
        data = {name: getattr(self, name) for name in USER_SETTINGS}
        self.settings_file.write_text(json.dumps(data, indent=2))

    def snapshot(self) -> ConfigSnapshot:
        values = {f.name: getattr(self, f.name) for f in fields(ConfigSnapshot) if f.name in DEFAULT_CONFIG}
        return ConfigSnapshot(metrics_file=str(self.metrics_file), **values)
