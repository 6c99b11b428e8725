"""
In-memory camera registry used as the camera-switch collaborator.
"""

import json
import logging
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..core.types import CameraDescriptor

logger = logging.getLogger(__name__)


def _parse_keywords(value: Any) -> tuple:
    if isinstance(value, str):
        value = value.split(",")
    keywords = [str(k).strip() for k in (value or [])]
    return tuple(k for k in keywords if k)


def camera_from_dict(data: Dict[str, Any]) -> CameraDescriptor:
    """Build a camera descriptor from a camera record."""
    return CameraDescriptor(
        id=str(data["id"]),
        name=str(data.get("name") or data["id"]),
        keywords=_parse_keywords(data.get("keywords")),
        is_active=bool(data.get("isActive", False)),
    )


class CameraRegistry:
    """Ordered set of cameras with a single active one."""

    def __init__(self, cameras: Iterable[CameraDescriptor] = (), on_switch: Optional[Callable[[CameraDescriptor], None]] = None):
        self._cameras: List[CameraDescriptor] = list(cameras)
        self._on_switch = on_switch
        self._active_id: Optional[str] = None

        active = [c for c in self._cameras if c.is_active]
        if active:
            self._active_id = active[0].id
        elif self._cameras:
            # First camera is shown until something else is selected
            self._active_id = self._cameras[0].id
        self._sync_flags()

    @classmethod
    def from_file(cls, path: str, on_switch: Optional[Callable[[CameraDescriptor], None]] = None) -> "CameraRegistry":
        """Load cameras from a JSON list of camera records."""
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"Camera file {path} must contain a JSON list")
        cameras = [camera_from_dict(item) for item in data]
        logger.info(f"📷 Loaded {len(cameras)} cameras from {path}")
        return cls(cameras, on_switch=on_switch)

    def list_cameras(self) -> List[CameraDescriptor]:
        return list(self._cameras)

    def active_camera_id(self) -> Optional[str]:
        return self._active_id

    def active_camera(self) -> Optional[CameraDescriptor]:
        for camera in self._cameras:
            if camera.id == self._active_id:
                return camera
        return None

    def switch_to(self, camera_id: str) -> None:
        """Make the given camera the active one."""
        if not any(c.id == camera_id for c in self._cameras):
            raise KeyError(f"Unknown camera: {camera_id}")
        self._active_id = camera_id
        self._sync_flags()
        camera = self.active_camera()
        logger.info(f"📺 Now showing: {camera.name}")
        if self._on_switch is not None:
            self._on_switch(camera)

    def _sync_flags(self) -> None:
        self._cameras = [replace(c, is_active=(c.id == self._active_id)) for c in self._cameras]
