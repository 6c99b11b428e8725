"""
Voice command routing: confidence gating and keyword dispatch to cameras.
"""

import logging
from typing import Callable, Optional

from ..core.interfaces import CameraSwitcher
from ..core.types import CameraDescriptor, RecognitionResult
from .config import config

logger = logging.getLogger(__name__)

CommandMatchedCallback = Callable[[str, str, float], None]


class ConfidenceGate:
    """Forwards recognition results whose confidence meets the threshold."""

    def __init__(self, threshold: int = config.DEFAULT_THRESHOLD, downstream: Optional[Callable[[RecognitionResult], None]] = None):
        self.threshold = threshold
        self._downstream = downstream

    def accepts(self, confidence: float) -> bool:
        """Check if a confidence value passes the gate."""
        return confidence >= self.threshold

    def forward(self, result: RecognitionResult) -> bool:
        """Pass the result downstream if it is confident enough."""
        if not self.accepts(result.confidence):
            logger.debug(f"Dropped '{result.transcript}' ({result.confidence:.0f}% < {self.threshold}%)")
            return False
        if self._downstream is not None:
            self._downstream(result)
        return True


class KeywordDispatcher:
    """Matches recognized text against camera keywords and requests switches."""

    def __init__(
        self,
        cameras: CameraSwitcher,
        auto_switch_enabled: bool = True,
        on_command_matched: Optional[CommandMatchedCallback] = None,
    ):
        self._cameras = cameras
        self.auto_switch_enabled = auto_switch_enabled
        self._on_command_matched = on_command_matched

    def match(self, transcript: str) -> Optional[CameraDescriptor]:
        """Return the first camera, in registry order, with a keyword in the text."""
        if not transcript:
            return None
        text = transcript.lower()
        for camera in self._cameras.list_cameras():
            for keyword in camera.keywords:
                keyword = keyword.strip().lower()
                if keyword and keyword in text:
                    return camera
        return None

    def dispatch(self, transcript: str, confidence: float) -> Optional[CameraDescriptor]:
        """Switch to the camera named in the transcript, if any."""
        if not self.auto_switch_enabled:
            return None

        camera = self.match(transcript)
        if camera is None:
            return None
        if camera.id == self._cameras.active_camera_id():
            logger.debug(f"'{camera.name}' is already the active camera")
            return None

        self._cameras.switch_to(camera.id)
        logger.info(f"🎥 Switching to {camera.name} ({confidence:.0f}% confidence)")
        if self._on_command_matched is not None:
            self._on_command_matched(camera.id, transcript, confidence)
        return camera
