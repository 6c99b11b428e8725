"""
Microphone capture handles for the voice-command pipeline.

Each component that needs audio owns its own ``MicrophoneStream``; the
monitor and the active recognizer may hold streams at the same time.
PortAudio delivers blocks on its own thread, so blocks are handed over to
the event loop before any of our code sees them.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import numpy as np
from scipy import signal

from ..utils.errors import DeviceUnavailable
from .interfaces import BlockCallback, CaptureHandle

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MicrophoneSettings:
    samplerate: int = 16000
    channels: int = 1
    blocksize: int = 0
    device: Optional[int] = None
    echo_cancellation: bool = False
    noise_suppression: bool = False
    auto_gain_control: bool = False


class MicrophoneStream:
    """An exclusively owned, mono float32 input stream."""

    def __init__(self, settings: MicrophoneSettings, on_block: BlockCallback):
        self.settings = settings
        self._on_block = on_block
        self._stream: Any = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._stream is not None and not self._closed

    async def open(self) -> None:
        """Open the device; raises DeviceUnavailable when it cannot be used."""
        if self._stream is not None or self._closed:
            return
        self._loop = asyncio.get_running_loop()
        opening = asyncio.ensure_future(asyncio.to_thread(self._open_stream))
        try:
            stream = await asyncio.shield(opening)
        except asyncio.CancelledError:
            # The thread still finishes opening; nobody will own that stream
            self._closed = True
            opening.add_done_callback(self._release_abandoned)
            raise
        if self._closed:
            # Released while the device was still being negotiated
            self._shutdown(stream)
            return
        self._stream = stream
        logger.debug(f"🎙️  Microphone opened ({self.settings.samplerate} Hz)")

    def close(self) -> None:
        """Release the device. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        stream, self._stream = self._stream, None
        if stream is not None:
            self._shutdown(stream)
            logger.debug("🎙️  Microphone released")

    def _open_stream(self):
        try:
            import sounddevice as sd
        except OSError as e:
            raise DeviceUnavailable(f"PortAudio is not available: {e}") from e

        try:
            stream = sd.InputStream(
                samplerate=self.settings.samplerate,
                blocksize=self.settings.blocksize,
                dtype="float32",
                channels=self.settings.channels,
                device=self.settings.device,
                callback=self._callback,
            )
            stream.start()
        except (sd.PortAudioError, ValueError) as e:
            raise DeviceUnavailable(f"Could not open microphone: {e}") from e
        return stream

    def _release_abandoned(self, opening: asyncio.Future) -> None:
        if opening.cancelled() or opening.exception() is not None:
            return
        self._shutdown(opening.result())
        logger.debug("🎙️  Microphone released after cancelled open")

    def _shutdown(self, stream) -> None:
        try:
            stream.stop()
        finally:
            stream.close()

    def _callback(self, indata, frames, time_info, status):
        """Audio stream callback (PortAudio thread)."""
        if status:
            logger.debug(f"Audio status: {status}")
        if self._closed or self._loop is None:
            return
        block = indata[:, 0].copy()
        try:
            self._loop.call_soon_threadsafe(self._deliver, block)
        except RuntimeError:
            # Loop already closed during shutdown
            pass

    def _deliver(self, block: np.ndarray) -> None:
        if not self._closed:
            self._on_block(block)


MicrophoneFactory = Callable[[MicrophoneSettings, BlockCallback], CaptureHandle]


def condition_audio(samples: np.ndarray, samplerate: int, settings: MicrophoneSettings) -> np.ndarray:
    """Apply the voice conditioning requested in the capture settings.

    Noise suppression is a first-order high-pass at 100 Hz plus a gate on
    near-silent audio; gain control normalizes the peak to 0.95. Echo
    cancellation is left to the audio driver.
    """
    data = np.asarray(samples, dtype=np.float32)
    if data.size == 0:
        return data

    if settings.noise_suppression:
        if data.size > 9:
            b, a = signal.butter(1, 100.0 / (0.5 * samplerate), btype="high")
            data = signal.filtfilt(b, a, data).astype(np.float32)
        rms = float(np.sqrt(np.mean(data ** 2)))
        if 20 * np.log10(rms + 1e-12) < -60.0:
            data = data * 0.1

    if settings.auto_gain_control:
        peak = float(np.max(np.abs(data)))
        if peak > 1e-4:
            data = data / peak * 0.95

    return np.clip(data, -1.0, 1.0).astype(np.float32)


def list_input_devices() -> List[Dict[str, Any]]:
    """Return the available input devices."""
    try:
        import sounddevice as sd
    except OSError as e:
        raise DeviceUnavailable(f"PortAudio is not available: {e}") from e

    devices = []
    for index, info in enumerate(sd.query_devices()):
        if info.get("max_input_channels", 0) > 0:
            devices.append({
                "index": index,
                "name": info.get("name"),
                "max_input_channels": info.get("max_input_channels", 0),
                "default_samplerate": info.get("default_samplerate"),
            })
    return devices
