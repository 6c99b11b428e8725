"""
Utility modules for camswitch.

Contains configuration management, errors, camera registry and command routing.
"""

from .config import Config, RecognitionConfig
from .errors import CamSwitchError, DeviceUnavailable, RemoteServiceError, UnsupportedBackend

__all__ = [
    "Config",
    "RecognitionConfig",
    "CamSwitchError",
    "DeviceUnavailable",
    "RemoteServiceError",
    "UnsupportedBackend",
]
