"""
Model readiness as seen by the transcription core.

Downloading and storing model files happens elsewhere; the core only asks
"is the model at path P ready?".
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol


@dataclass(frozen=True)
class ModelReadiness:
    """NotReady when path is None, Ready(path) otherwise."""
    path: Optional[str] = None

    @property
    def ready(self) -> bool:
        return self.path is not None


NOT_READY = ModelReadiness()


class ModelGate(Protocol):
    def is_ready(self) -> bool: ...

    def path(self) -> str: ...


# Files an MLX Whisper model directory must contain
REQUIRED_CONFIG = "config.json"
WEIGHT_FILES = ("weights.safetensors", "weights.npz")


class LocalModelGate:
    """
    Reports an MLX Whisper model directory as ready once its files exist.

    A value containing "/" that is not a local directory is treated as a
    Hugging Face repo id and reported ready (mlx-whisper fetches it).
    """

    def __init__(self, model_path: str, allow_remote: bool = False):
        self.model_path = model_path
        self.allow_remote = allow_remote

    def readiness(self) -> ModelReadiness:
        if not self.model_path:
            return NOT_READY

        directory = Path(self.model_path).expanduser()
        if directory.is_dir():
            has_config = (directory / REQUIRED_CONFIG).is_file()
            has_weights = any((directory / name).is_file() for name in WEIGHT_FILES)
            if has_config and has_weights:
                return ModelReadiness(str(directory))
            return NOT_READY

        if self.allow_remote and "/" in self.model_path and not self.model_path.startswith(("/", "~", ".")):
            return ModelReadiness(self.model_path)

        return NOT_READY

    def is_ready(self) -> bool:
        return self.readiness().ready

    def path(self) -> str:
        return self.readiness().path or ""
