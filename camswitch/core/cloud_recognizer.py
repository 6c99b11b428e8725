"""
Chunked cloud recognition: record fixed-length chunks and submit each one.

Capture never waits on the network. As soon as a chunk is finalized the next
recording starts, and the finished chunk is submitted in its own task.
"""

import asyncio
import io
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

import numpy as np
import soundfile as sf

from ..utils.config import config
from ..utils.errors import DeviceUnavailable, RemoteServiceError
from .interfaces import FailureCallback, ResultCallback
from .microphone import MicrophoneFactory, MicrophoneSettings, MicrophoneStream, condition_audio
from .speech_api import SpeechApiClient
from .types import AudioChunk, RecognitionMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChunkFormat:
    encoding: str
    mime_type: str
    container: str
    subtype: str


OGG_OPUS = ChunkFormat("OGG_OPUS", "audio/ogg;codecs=opus", "OGG", "OPUS")
LINEAR16 = ChunkFormat("LINEAR16", "audio/wav", "WAV", "PCM_16")


def select_chunk_format() -> ChunkFormat:
    """Prefer compressed Opus; fall back to WAV when libsndfile lacks it."""
    if sf.check_format(OGG_OPUS.container, OGG_OPUS.subtype):
        return OGG_OPUS
    logger.warning("OGG/OPUS not supported by libsndfile, using WAV")
    return LINEAR16


def encode_samples(samples: np.ndarray, samplerate: int, fmt: ChunkFormat) -> bytes:
    buf = io.BytesIO()
    sf.write(buf, samples, samplerate, format=fmt.container, subtype=fmt.subtype)
    return buf.getvalue()


class ChunkRecorder:
    """One cycle's capture handle and the audio it has collected."""

    def __init__(self, settings: MicrophoneSettings, fmt: ChunkFormat, microphone_factory: MicrophoneFactory, sequence: int):
        self.settings = settings
        self.format = fmt
        self.sequence = sequence
        self._blocks: List[np.ndarray] = []
        self._mic = microphone_factory(settings, self._blocks.append)
        self._released = False

    async def start(self) -> None:
        await self._mic.open()

    def finish(self) -> AudioChunk:
        """Stop recording and encode what was captured."""
        self._release()
        if self._blocks:
            samples = np.concatenate(self._blocks)
        else:
            samples = np.zeros(0, dtype=np.float32)
        self._blocks = []
        samples = condition_audio(samples, self.settings.samplerate, self.settings)
        data = encode_samples(samples, self.settings.samplerate, self.format) if samples.size else b""
        return AudioChunk(
            data=data,
            encoding=self.format.encoding,
            mime_type=self.format.mime_type,
            sample_rate=self.settings.samplerate,
            duration_ms=int(1000 * len(samples) / self.settings.samplerate),
            sequence=self.sequence,
        )

    def discard(self) -> None:
        self._release()
        self._blocks = []

    def _release(self) -> None:
        if not self._released:
            self._released = True
            self._mic.close()


class CloudChunkedRecognizer:
    """Repeating record → submit cycle against the remote speech service."""

    mode = RecognitionMode.CLOUD

    def __init__(
        self,
        client: SpeechApiClient,
        on_result: ResultCallback,
        on_failure: FailureCallback,
        chunk_duration: float = config.CHUNK_DURATION,
        settings: Optional[MicrophoneSettings] = None,
        microphone_factory: MicrophoneFactory = MicrophoneStream,
        chunk_format: Optional[ChunkFormat] = None,
    ):
        self._client = client
        self._on_result = on_result
        self._on_failure = on_failure
        self.chunk_duration = chunk_duration
        self.settings = settings or MicrophoneSettings(
            samplerate=config.CLOUD_SAMPLERATE,
            channels=1,
            device=config.AUDIO_DEVICE_ID,
            echo_cancellation=True,
            noise_suppression=True,
            auto_gain_control=True,
        )
        self._microphone_factory = microphone_factory
        self._chunk_format = chunk_format

        self.is_active = False
        self._format: Optional[ChunkFormat] = None
        self._recorder: Optional[ChunkRecorder] = None
        self._cycle_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self._sequence = 0
        self._last_delivered = 0

    async def start(self) -> None:
        """Start the first recording; raises DeviceUnavailable if it cannot."""
        if self.is_active:
            return
        self.is_active = True
        self._format = self._chunk_format or select_chunk_format()
        try:
            recorder = await self._begin_chunk()
        except DeviceUnavailable:
            self.is_active = False
            self._recorder = None
            raise
        if not self.is_active:
            recorder.discard()
            return
        self._cycle_task = asyncio.create_task(self._run_cycles(recorder))
        logger.info(f"☁️  Cloud recognition active ({self._format.encoding}, {self.chunk_duration:.1f}s chunks)")

    def stop(self) -> None:
        """Release the microphone and drop every chunk still in flight."""
        was_active = self.is_active
        self.is_active = False
        recorder, self._recorder = self._recorder, None
        if recorder is not None:
            recorder.discard()
        task, self._cycle_task = self._cycle_task, None
        if task is not None:
            task.cancel()
        for pending in list(self._pending):
            pending.cancel()
        if was_active:
            logger.info("🛑 Cloud recognition stopped")

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    async def _begin_chunk(self) -> ChunkRecorder:
        self._sequence += 1
        recorder = ChunkRecorder(self.settings, self._format, self._microphone_factory, self._sequence)
        self._recorder = recorder
        await recorder.start()
        return recorder

    async def _run_cycles(self, recorder: ChunkRecorder) -> None:
        while True:
            await asyncio.sleep(self.chunk_duration)
            self._recorder = None
            chunk = recorder.finish()
            if not self.is_active:
                return

            self._submit(chunk)
            try:
                recorder = await self._begin_chunk()
            except DeviceUnavailable as e:
                self._recorder = None
                self._fail(e)
                return
            if not self.is_active:
                self._recorder = None
                recorder.discard()
                return

    def _submit(self, chunk: AudioChunk) -> None:
        if chunk.duration_ms == 0:
            logger.debug(f"Chunk #{chunk.sequence} is empty, not submitted")
            return
        task = asyncio.create_task(self._recognize(chunk))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _recognize(self, chunk: AudioChunk) -> None:
        try:
            result = await self._client.recognize(chunk)
        except RemoteServiceError as e:
            self._fail(e)
            return

        if not self.is_active:
            logger.debug(f"Discarding late result for chunk #{chunk.sequence}")
            return
        if result is None:
            logger.debug(f"No speech recognized in chunk #{chunk.sequence}")
            return
        if chunk.sequence < self._last_delivered:
            logger.debug(f"Dropping out-of-order result for chunk #{chunk.sequence}")
            return
        self._last_delivered = chunk.sequence
        logger.info(f"🗣️  Recognized: {result.transcript} ({result.confidence:.0f}%)")
        try:
            self._on_result(result)
        except Exception as e:
            logger.error(f"✗ Error handling result for chunk #{chunk.sequence}: {e}", exc_info=True)

    def _fail(self, error: Exception) -> None:
        if not self.is_active:
            return
        self.is_active = False
        logger.warning(f"⚠️  Cloud recognition failed: {error}")
        self._on_failure(error)
