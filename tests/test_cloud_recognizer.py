"""
Tests for the chunked cloud recognizer.
"""

import asyncio
import io
import unittest
from unittest import mock

import numpy as np
import soundfile as sf

from camswitch.core import cloud_recognizer
from camswitch.core.cloud_recognizer import LINEAR16, OGG_OPUS, ChunkRecorder, CloudChunkedRecognizer, select_chunk_format
from camswitch.core.microphone import MicrophoneSettings
from camswitch.core.types import RecognitionResult
from camswitch.utils.errors import DeviceUnavailable, RemoteServiceError

from fakes import FakeMicrophoneFactory, FakeSpeechClient, SlowOpenMicrophone, tone, wait_for

CHUNK_SECONDS = 0.02


class CloudTestCase(unittest.IsolatedAsyncioTestCase):
    def make_recognizer(self, client, mics=None, on_result=None):
        self.results = []
        self.failures = []
        self.mics = mics or FakeMicrophoneFactory(initial_block=tone())
        recognizer = CloudChunkedRecognizer(
            client,
            on_result=on_result or self.results.append,
            on_failure=self.failures.append,
            chunk_duration=CHUNK_SECONDS,
            microphone_factory=self.mics,
            chunk_format=LINEAR16,
        )
        self.addCleanup(recognizer.stop)
        return recognizer


class TestChunkCycle(CloudTestCase):
    """Test the record and submit cycle."""

    async def test_emits_result_for_each_chunk(self):
        """Every chunk with speech produces a result."""
        client = FakeSpeechClient(default=RecognitionResult("mude para ipanema", 92.0))
        recognizer = self.make_recognizer(client)
        await recognizer.start()

        self.assertTrue(await wait_for(lambda: len(self.results) >= 3))
        recognizer.stop()

        self.assertTrue(all(r.transcript == "mude para ipanema" for r in self.results))
        self.assertEqual([c.sequence for c in client.chunks[:3]], [1, 2, 3])
        self.assertTrue(all(c.encoding == "LINEAR16" for c in client.chunks))

    async def test_result_handler_error_keeps_cycling(self):
        """A failing result handler is logged and later chunks are still delivered."""
        client = FakeSpeechClient(default=RecognitionResult("centro", 90.0))

        def on_result(result):
            self.results.append(result)
            if len(self.results) == 1:
                raise RuntimeError("switch failed")

        recognizer = self.make_recognizer(client, on_result=on_result)
        with self.assertLogs("camswitch.core.cloud_recognizer", level="ERROR"):
            await recognizer.start()
            self.assertTrue(await wait_for(lambda: len(self.results) >= 2))
        self.assertTrue(recognizer.is_active)
        self.assertEqual(self.failures, [])

    async def test_chunks_are_wav_of_captured_audio(self):
        client = FakeSpeechClient()
        recognizer = self.make_recognizer(client)
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: len(client.chunks) >= 1))
        recognizer.stop()

        chunk = client.chunks[0]
        samples, samplerate = sf.read(io.BytesIO(chunk.data))
        self.assertEqual(samplerate, 16000)
        self.assertEqual(len(samples), 1600)
        self.assertEqual(chunk.duration_ms, 100)

    async def test_next_capture_starts_before_previous_submission_completes(self):
        """Capture keeps going while the network call is pending."""
        client = FakeSpeechClient(default=None, delay=CHUNK_SECONDS * 3)
        recognizer = self.make_recognizer(client)
        await recognizer.start()

        self.assertTrue(await wait_for(lambda: len(client.completed_at) >= 3))
        recognizer.stop()

        for sequence in (1, 2, 3):
            with self.subTest(cycle=sequence):
                next_capture = self.mics.created[sequence]
                self.assertLessEqual(next_capture.opened_at, client.completed_at[sequence])

    async def test_silence_emits_nothing(self):
        client = FakeSpeechClient(default=None)
        recognizer = self.make_recognizer(client)
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: len(client.completed_at) >= 2))
        recognizer.stop()
        self.assertEqual(self.results, [])
        self.assertEqual(self.failures, [])

    async def test_empty_chunk_is_not_submitted(self):
        client = FakeSpeechClient(default=RecognitionResult("x", 99.0))
        recognizer = self.make_recognizer(client, mics=FakeMicrophoneFactory())
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: len(self.mics.created) >= 3))
        recognizer.stop()
        self.assertEqual(client.chunks, [])

    async def test_out_of_order_results_are_dropped(self):
        """A slow older chunk does not overwrite a newer result."""
        client = FakeSpeechClient(
            by_sequence={1: RecognitionResult("primeiro", 95.0), 2: RecognitionResult("segundo", 95.0)},
            delays={1: CHUNK_SECONDS * 4},
        )
        recognizer = self.make_recognizer(client)
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: 1 in client.completed_at and 2 in client.completed_at))
        recognizer.stop()
        self.assertEqual([r.transcript for r in self.results], ["segundo"])


class TestCloudFailures(CloudTestCase):
    """Test failure and cancellation behaviour."""

    async def test_remote_error_signals_failure_and_stops_cycling(self):
        error = RemoteServiceError("denied", status="PERMISSION_DENIED")
        client = FakeSpeechClient(default=error)
        recognizer = self.make_recognizer(client)
        await recognizer.start()

        self.assertTrue(await wait_for(lambda: self.failures))
        self.assertFalse(recognizer.is_active)
        await wait_for(lambda: all(m.closed for m in self.mics.created))
        created = len(self.mics.created)

        await wait_for(lambda: False, timeout=CHUNK_SECONDS * 4)
        self.assertEqual(self.failures, [error])
        self.assertEqual(len(self.mics.created), created)
        self.assertTrue(all(m.close_calls == 1 for m in self.mics.created))

    async def test_microphone_denied_on_start(self):
        recognizer = self.make_recognizer(FakeSpeechClient(), mics=FakeMicrophoneFactory(fail_on={0}))
        with self.assertRaises(DeviceUnavailable):
            await recognizer.start()
        self.assertFalse(recognizer.is_active)

    async def test_microphone_denied_on_later_cycle(self):
        mics = FakeMicrophoneFactory(fail_on={1}, initial_block=tone())
        recognizer = self.make_recognizer(FakeSpeechClient(), mics=mics)
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: self.failures))
        self.assertIsInstance(self.failures[0], DeviceUnavailable)

    async def test_stop_releases_microphone_and_discards_pending_results(self):
        """Results that arrive after stop are never emitted."""
        client = FakeSpeechClient(default=RecognitionResult("tarde demais", 99.0), delay=CHUNK_SECONDS * 5)
        recognizer = self.make_recognizer(client)
        await recognizer.start()

        self.assertTrue(await wait_for(lambda: client.chunks))
        recognizer.stop()
        await wait_for(lambda: False, timeout=CHUNK_SECONDS * 8)

        self.assertEqual(self.results, [])
        self.assertEqual(self.failures, [])
        self.assertEqual(recognizer.pending_requests, 0)
        self.assertTrue(all(m.close_calls == 1 for m in self.mics.created))

    async def test_stop_is_idempotent(self):
        recognizer = self.make_recognizer(FakeSpeechClient())
        await recognizer.start()
        recognizer.stop()
        recognizer.stop()
        self.assertEqual(self.mics.created[0].close_calls, 1)

    async def test_stop_while_next_capture_is_opening(self):
        """A capture still opening when recognition stops is released once the device opens."""
        streams = []
        created = []

        def factory(settings, on_block):
            mic = SlowOpenMicrophone(settings, on_block, streams, delay=0.2 if created else 0.0)
            created.append(mic)
            return mic

        recognizer = self.make_recognizer(FakeSpeechClient(), mics=factory)
        await recognizer.start()
        self.assertTrue(await wait_for(lambda: len(created) == 2))
        await asyncio.sleep(0.05)
        recognizer.stop()

        self.assertTrue(await wait_for(lambda: len(streams) == 2 and not any(s.running for s in streams), timeout=1.0))
        self.assertTrue(all(s.closed for s in streams))


class TestChunkFormat(unittest.TestCase):
    """Test encoding selection."""

    def test_prefers_opus(self):
        with mock.patch.object(cloud_recognizer.sf, "check_format", return_value=True):
            self.assertIs(select_chunk_format(), OGG_OPUS)

    def test_falls_back_to_wav(self):
        with mock.patch.object(cloud_recognizer.sf, "check_format", return_value=False):
            self.assertIs(select_chunk_format(), LINEAR16)

    def test_recorder_conditions_audio(self):
        """Gain control brings quiet speech up to a usable level."""
        settings = MicrophoneSettings(samplerate=16000, auto_gain_control=True, noise_suppression=True)
        mics = FakeMicrophoneFactory()
        recorder = ChunkRecorder(settings, LINEAR16, mics, sequence=4)
        mics.created[0].opened = True
        mics.created[0].feed(tone(amplitude=0.05))

        chunk = recorder.finish()
        samples, _ = sf.read(io.BytesIO(chunk.data))
        self.assertEqual(chunk.sequence, 4)
        self.assertGreater(np.max(np.abs(samples)), 0.5)
        self.assertEqual(mics.created[0].close_calls, 1)


if __name__ == "__main__":
    unittest.main()
