"""
Local speech recognition using Vosk.
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable, Optional

import numpy as np
from scipy import signal

from ..utils.config import config
from ..utils.errors import DeviceUnavailable, UnsupportedBackend
from .interfaces import CaptureHandle, ResultCallback
from .microphone import MicrophoneFactory, MicrophoneSettings, MicrophoneStream
from .types import RecognitionMode, RecognitionResult

logger = logging.getLogger(__name__)


def to_recognizer_pcm(block: np.ndarray, resample_ratio: float) -> bytes:
    """Resample a float32 block and convert it to 16-bit PCM bytes."""
    audio_data = np.asarray(block, dtype=np.float32)
    if resample_ratio != 1.0:
        num_output_samples = int(len(audio_data) * resample_ratio)
        audio_data = signal.resample(audio_data, num_output_samples)

    # Scale to int16 range
    scaled = np.clip(audio_data * 32767, -32768, 32767)
    return np.int16(scaled).tobytes()


class LocalRecognitionAdapter:
    """Continuous on-device recognition; only settled utterances are emitted."""

    mode = RecognitionMode.LOCAL

    def __init__(
        self,
        on_result: ResultCallback,
        model_path: str = config.MODEL_PATH,
        language_code: str = config.LANGUAGE_CODE,
        settings: Optional[MicrophoneSettings] = None,
        microphone_factory: MicrophoneFactory = MicrophoneStream,
        recognizer_factory: Optional[Callable[[], Any]] = None,
        recognizer_samplerate: int = config.VOSK_SAMPLERATE,
        confidence: float = config.LOCAL_CONFIDENCE,
    ):
        self._on_result = on_result
        self.model_path = model_path
        self.language_code = language_code
        self.settings = settings or MicrophoneSettings(
            samplerate=config.MIC_SAMPLERATE,
            blocksize=config.BLOCKSIZE,
            device=config.AUDIO_DEVICE_ID,
        )
        self._microphone_factory = microphone_factory
        self._recognizer_factory = recognizer_factory or self._load_vosk_recognizer
        self.recognizer_samplerate = recognizer_samplerate
        self.confidence = confidence

        self.is_listening = False
        self._mic: Optional[CaptureHandle] = None
        self._task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        """Load the recognizer, open the microphone and start listening."""
        if self.is_listening:
            return

        recognizer = await asyncio.to_thread(self._recognizer_factory)
        queue: asyncio.Queue = asyncio.Queue()
        mic = self._microphone_factory(self.settings, queue.put_nowait)
        self._mic = mic
        try:
            await mic.open()
        except (DeviceUnavailable, asyncio.CancelledError):
            if self._mic is mic:
                self._mic = None
            mic.close()
            raise
        if self._mic is not mic:
            # Stopped while the microphone was opening
            return

        self.is_listening = True
        self._task = asyncio.create_task(self._recognition_loop(queue, recognizer))
        logger.info(f"✅ Local recognition active ({self.language_code})! Speak now...")

    def stop(self) -> None:
        """Stop listening immediately; nothing is emitted afterwards."""
        was_listening = self.is_listening
        self.is_listening = False
        mic, self._mic = self._mic, None
        if mic is not None:
            mic.close()
        task, self._task = self._task, None
        if task is not None:
            task.cancel()
        if was_listening:
            logger.info("🛑 Local recognition stopped")

    async def _recognition_loop(self, queue: asyncio.Queue, recognizer: Any) -> None:
        """Feed microphone blocks to the recognizer and emit final results."""
        resample_ratio = self.recognizer_samplerate / self.settings.samplerate
        while self.is_listening:
            block = await queue.get()
            try:
                if not recognizer.AcceptWaveform(to_recognizer_pcm(block, resample_ratio)):
                    # Partial results are not used
                    continue
                result = json.loads(recognizer.Result())
                text = result.get("text", "").strip()
                if text and self.is_listening:
                    logger.info(f"🗣️  Recognized: {text}")
                    self._on_result(RecognitionResult(text, self.confidence))
            except Exception as e:
                logger.error(f"✗ Error processing audio: {e}", exc_info=True)

    def _load_vosk_recognizer(self):
        try:
            import vosk
        except (ImportError, OSError) as e:
            raise UnsupportedBackend(f"Vosk is not available: {e}") from e

        if not os.path.isdir(self.model_path):
            raise UnsupportedBackend(
                f"No Vosk model for {self.language_code} at {self.model_path}"
            )

        logger.info(f"📂 Loading Vosk model from {self.model_path}...")
        vosk.SetLogLevel(-1)
        try:
            model = vosk.Model(self.model_path)
        except Exception as e:
            raise UnsupportedBackend(f"Failed to load Vosk model: {e}") from e
        logger.info("✓ Model loaded")
        return vosk.KaldiRecognizer(model, self.recognizer_samplerate)
