"""Protocol interfaces used by VoiceCommandPipeline."""

from typing import Callable, List, Optional, Protocol

import numpy as np

from .types import CameraDescriptor, RecognitionMode, RecognitionResult

BlockCallback = Callable[[np.ndarray], None]
ResultCallback = Callable[[RecognitionResult], None]
FailureCallback = Callable[[Exception], None]


class CaptureHandle(Protocol):
    async def open(self) -> None: ...

    def close(self) -> None: ...


class RecognitionBackend(Protocol):
    mode: RecognitionMode

    async def start(self) -> None: ...

    def stop(self) -> None: ...


class CameraSwitcher(Protocol):
    def list_cameras(self) -> List[CameraDescriptor]: ...

    def active_camera_id(self) -> Optional[str]: ...

    def switch_to(self, camera_id: str) -> None: ...
