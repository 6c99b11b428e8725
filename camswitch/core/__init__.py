"""
Core functionality for the voice-command pipeline.

This module contains the main processing components:
- Microphone capture and level metering
- Local (Vosk) and cloud (Google Speech-to-Text) recognition
- Backend selection and fallback
"""

from .level_monitor import AudioLevelMonitor
from .pipeline import VoiceCommandPipeline, select_mode
from .types import CameraDescriptor, PipelineState, PipelineStatus, RecognitionMode, RecognitionResult

__all__ = [
    "AudioLevelMonitor",
    "VoiceCommandPipeline",
    "select_mode",
    "CameraDescriptor",
    "PipelineState",
    "PipelineStatus",
    "RecognitionMode",
    "RecognitionResult",
]
