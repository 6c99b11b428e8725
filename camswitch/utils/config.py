"""
Configuration management for the camswitch voice console.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional


def _optional_int(value: Optional[str]) -> Optional[int]:
    if value is None or value.strip() == "":
        return None
    return int(value)


class Config:
    """Runtime settings for audio capture and speech recognition."""

    def __init__(self):
        # Paths
        self.MODEL_PATH = os.getenv("VOSK_MODEL_PATH", "./model/vosk-model-small-pt-0.3")

        # Audio settings
        self.AUDIO_DEVICE_ID = _optional_int(os.getenv("CAMSWITCH_AUDIO_DEVICE"))
        self.MIC_SAMPLERATE = 44100
        self.VOSK_SAMPLERATE = 16000
        self.CLOUD_SAMPLERATE = 16000
        self.BLOCKSIZE = 11025

        # Recognition settings
        self.LANGUAGE_CODE = os.getenv("CAMSWITCH_LANGUAGE", "pt-BR")
        self.CHUNK_DURATION = float(os.getenv("CAMSWITCH_CHUNK_SECONDS", "4.0"))
        self.SPEECH_API_URL = os.getenv(
            "CAMSWITCH_SPEECH_API_URL",
            "https://speech.googleapis.com/v1/speech:recognize",
        )
        self.LOCAL_CONFIDENCE = 90
        self.DEFAULT_CLOUD_CONFIDENCE = 90
        self.DEFAULT_THRESHOLD = 85

        # Level meter settings
        self.LEVEL_FFT_SIZE = 256
        self.LEVEL_FRAME_RATE = 60

    def get_model_path(self) -> str:
        """Get the path to the Vosk model directory."""
        return self.MODEL_PATH

    def get_audio_device_id(self) -> Optional[int]:
        """Get the audio device ID (None means the system default)."""
        return self.AUDIO_DEVICE_ID


# Global config instance
config = Config()


@dataclass(frozen=True)
class RecognitionConfig:
    """Read-only snapshot of the system configuration used by one activation."""

    api_key: Optional[str] = None
    confidence_threshold: int = 85
    auto_switch_enabled: bool = True

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @classmethod
    def from_system_config(cls, data: Dict[str, Any]) -> "RecognitionConfig":
        """Build a snapshot from the system configuration record.

        Mirrors how the record is stored: an empty key is no key, a missing,
        zero or unparsable threshold falls back to the default and a missing
        auto-switch flag means enabled.
        """
        api_key = data.get("speechApiKey") or None
        if api_key is not None:
            api_key = str(api_key).strip() or None

        try:
            threshold = int(data.get("voiceThreshold") or 0)
        except (TypeError, ValueError):
            threshold = 0
        if not threshold:
            threshold = config.DEFAULT_THRESHOLD
        threshold = max(0, min(100, threshold))

        auto_switch = data.get("autoSwitchEnabled")
        if auto_switch is None:
            auto_switch = True

        return cls(
            api_key=api_key,
            confidence_threshold=threshold,
            auto_switch_enabled=bool(auto_switch),
        )


def load_system_config(path: str) -> RecognitionConfig:
    """Load a system configuration record from a JSON file."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"System config in {path} must be a JSON object")
    return RecognitionConfig.from_system_config(data)
