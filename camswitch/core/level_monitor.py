"""
Microphone level metering for the operator's audio meter.
"""

import asyncio
import logging
from typing import AsyncIterator, Callable, Optional

import numpy as np

from ..utils.config import config
from ..utils.errors import DeviceUnavailable
from .interfaces import CaptureHandle
from .microphone import MicrophoneFactory, MicrophoneSettings, MicrophoneStream

logger = logging.getLogger(__name__)


class SpectrumAnalyser:
    """Byte-scaled frequency snapshots of the most recent samples."""

    MIN_DECIBELS = -100.0
    MAX_DECIBELS = -30.0

    def __init__(self, fft_size: int = 256, smoothing: float = 0.8):
        self.fft_size = fft_size
        self.smoothing = smoothing
        self._window = np.blackman(fft_size)
        self._previous = np.zeros(fft_size // 2)

    @property
    def bin_count(self) -> int:
        return self.fft_size // 2

    def byte_frequency_data(self, samples: np.ndarray) -> np.ndarray:
        """Magnitude spectrum mapped from MIN..MAX decibels onto 0..255."""
        frame = np.zeros(self.fft_size)
        tail = np.asarray(samples, dtype=np.float64)[-self.fft_size:]
        frame[self.fft_size - tail.size:] = tail

        spectrum = np.abs(np.fft.rfft(frame * self._window))[: self.bin_count] / self.fft_size
        smoothed = self.smoothing * self._previous + (1.0 - self.smoothing) * spectrum
        self._previous = smoothed

        decibels = 20.0 * np.log10(np.maximum(smoothed, 1e-12))
        scaled = 255.0 * (decibels - self.MIN_DECIBELS) / (self.MAX_DECIBELS - self.MIN_DECIBELS)
        return np.floor(np.clip(scaled, 0.0, 255.0)).astype(np.uint8)

    def level(self, samples: np.ndarray) -> float:
        """Mean of the byte frequency data."""
        return float(np.mean(self.byte_frequency_data(samples)))


class AudioLevelMonitor:
    """Keeps a live amplitude value for the meter, independent of recognition."""

    def __init__(
        self,
        settings: Optional[MicrophoneSettings] = None,
        microphone_factory: MicrophoneFactory = MicrophoneStream,
        fft_size: int = config.LEVEL_FFT_SIZE,
        frame_rate: float = config.LEVEL_FRAME_RATE,
        on_unavailable: Optional[Callable[[DeviceUnavailable], None]] = None,
    ):
        self.settings = settings or MicrophoneSettings(
            samplerate=config.MIC_SAMPLERATE,
            device=config.AUDIO_DEVICE_ID,
        )
        self._microphone_factory = microphone_factory
        self.fft_size = fft_size
        self.frame_rate = frame_rate
        self._on_unavailable = on_unavailable
        self._mic: Optional[CaptureHandle] = None
        self._buffer = np.zeros(fft_size, dtype=np.float32)
        self.level = 0.0
        self.error: Optional[DeviceUnavailable] = None

    @property
    def active(self) -> bool:
        return self._mic is not None

    async def start(self) -> AsyncIterator[float]:
        """Open the microphone and return the stream of level samples."""
        if self._mic is not None:
            raise RuntimeError("Level monitor is already running")

        self._buffer = np.zeros(self.fft_size, dtype=np.float32)
        mic = self._microphone_factory(self.settings, self._on_block)
        try:
            await mic.open()
        except DeviceUnavailable as e:
            self.error = e
            logger.error(f"✗ Level meter unavailable: {e}")
            if self._on_unavailable is not None:
                self._on_unavailable(e)
            raise

        self.error = None
        self._mic = mic
        logger.info("📶 Level meter started")
        return self._frames(mic, SpectrumAnalyser(self.fft_size))

    def stop(self) -> None:
        """Release the microphone; the running sample stream ends."""
        mic, self._mic = self._mic, None
        if mic is not None:
            mic.close()
            logger.info("📶 Level meter stopped")
        self.level = 0.0

    async def _frames(self, mic: CaptureHandle, analyser: SpectrumAnalyser) -> AsyncIterator[float]:
        interval = 1.0 / self.frame_rate
        while self._mic is mic:
            self.level = analyser.level(self._buffer)
            yield self.level
            await asyncio.sleep(interval)

    def _on_block(self, block: np.ndarray) -> None:
        self._buffer = np.concatenate((self._buffer, block))[-self.fft_size:]
