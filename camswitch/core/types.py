"""
Shared data types for the voice-command pipeline.
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class RecognitionMode(str, Enum):
    LOCAL = "LOCAL"
    CLOUD = "CLOUD"


class PipelineState(str, Enum):
    INACTIVE = "INACTIVE"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    FALLBACK = "FALLBACK"
    STOPPING = "STOPPING"


BACKEND_LABELS = {
    RecognitionMode.LOCAL: "Local (Vosk)",
    RecognitionMode.CLOUD: "Google Speech API",
}


@dataclass(frozen=True)
class RecognitionResult:
    transcript: str
    confidence: float


@dataclass(frozen=True)
class AudioChunk:
    """One encoded, fixed-duration recording handed to the remote service."""

    data: bytes
    encoding: str
    mime_type: str
    sample_rate: int
    duration_ms: int
    sequence: int = 0

    def content_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True)
class CameraDescriptor:
    id: str
    name: str
    keywords: Tuple[str, ...] = ()
    is_active: bool = False


@dataclass
class PipelineStatus:
    """Observable snapshot of the pipeline for status displays."""

    state: PipelineState
    mode: Optional[RecognitionMode] = None
    listening: bool = False
    last_confidence: float = 0.0
    confidence_threshold: int = 85
    auto_switch_enabled: bool = True
    fell_back: bool = False
    diagnostic: str = ""

    @property
    def backend_label(self) -> str:
        if self.mode is None:
            return "-"
        return BACKEND_LABELS[self.mode]
