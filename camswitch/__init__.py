"""
camswitch - Hands-free camera switching for an operator console.

Recognizes spoken keywords and switches the live camera feed:
- Cloud recognition in fixed-length chunks with automatic local fallback
- Local, on-device recognition with Vosk
- Confidence gating and keyword dispatch to cameras
- Microphone level metering
"""

__version__ = "1.0.0"

# Core modules
from . import core
from . import utils

__all__ = ["core", "utils"]
