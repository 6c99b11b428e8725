"""
Tests for the Speech-to-Text HTTP client.
"""

import base64
import json
import unittest

import httpx

from camswitch.core.speech_api import SpeechApiClient, parse_response
from camswitch.core.types import AudioChunk
from camswitch.utils.errors import RemoteServiceError


def make_chunk(encoding="OGG_OPUS"):
    return AudioChunk(
        data=b"\x00\x01\x02",
        encoding=encoding,
        mime_type="audio/ogg;codecs=opus",
        sample_rate=16000,
        duration_ms=4000,
        sequence=1,
    )


class SpeechApiTestCase(unittest.IsolatedAsyncioTestCase):
    def make_client(self, handler):
        self.requests = []

        def record(request):
            self.requests.append(request)
            return handler(request)

        http = httpx.AsyncClient(transport=httpx.MockTransport(record))
        self.addAsyncCleanup(http.aclose)
        return SpeechApiClient("AIza-test", client=http)


class TestRecognize(SpeechApiTestCase):
    """Test chunk recognition requests and responses."""

    async def test_request_body(self):
        """The request carries the chunk, its encoding and no sample rate."""
        client = self.make_client(lambda request: httpx.Response(200, json={}))
        await client.recognize(make_chunk("LINEAR16"))

        request = self.requests[0]
        self.assertEqual(request.url.params["key"], "AIza-test")
        body = json.loads(request.content)
        self.assertEqual(body["config"], {
            "encoding": "LINEAR16",
            "languageCode": "pt-BR",
            "enableAutomaticPunctuation": True,
            "audioChannelCount": 1,
        })
        self.assertEqual(base64.b64decode(body["audio"]["content"]), b"\x00\x01\x02")

    async def test_result_with_confidence(self):
        payload = {"results": [{"alternatives": [{"transcript": "mude para ipanema", "confidence": 0.87}]}]}
        client = self.make_client(lambda request: httpx.Response(200, json=payload))
        result = await client.recognize(make_chunk())
        self.assertEqual(result.transcript, "mude para ipanema")
        self.assertAlmostEqual(result.confidence, 87.0)

    async def test_missing_confidence_defaults_to_90(self):
        payload = {"results": [{"alternatives": [{"transcript": "centro"}]}]}
        client = self.make_client(lambda request: httpx.Response(200, json=payload))
        result = await client.recognize(make_chunk())
        self.assertAlmostEqual(result.confidence, 90.0)

    async def test_no_results(self):
        """Silence is not an error."""
        client = self.make_client(lambda request: httpx.Response(200, json={}))
        self.assertIsNone(await client.recognize(make_chunk()))

    async def test_permission_denied(self):
        """Error payloads map to a readable message with diagnostics."""
        error = {"error": {"code": 403, "message": "Cloud Speech-to-Text API has not been used", "status": "PERMISSION_DENIED"}}
        client = self.make_client(lambda request: httpx.Response(403, json=error))
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.recognize(make_chunk())
        self.assertEqual(ctx.exception.status, "PERMISSION_DENIED")
        self.assertEqual(ctx.exception.http_status, 403)
        self.assertTrue(any("enable" in line.lower() for line in ctx.exception.diagnostics))

    async def test_uncatalogued_status(self):
        error = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
        client = self.make_client(lambda request: httpx.Response(429, json=error))
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.recognize(make_chunk())
        self.assertEqual(ctx.exception.message, "Quota exceeded")
        self.assertIn("Uncatalogued error: RESOURCE_EXHAUSTED", ctx.exception.diagnostics)

    async def test_non_json_error(self):
        client = self.make_client(lambda request: httpx.Response(502, text="Bad gateway"))
        with self.assertRaises(RemoteServiceError) as ctx:
            await client.recognize(make_chunk())
        self.assertIn("HTTP status: 502", ctx.exception.diagnostics)

    async def test_network_failure(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = self.make_client(handler)
        with self.assertRaises(RemoteServiceError):
            await client.recognize(make_chunk())

    async def test_malformed_results(self):
        client = self.make_client(lambda request: httpx.Response(200, json={"results": [{}]}))
        with self.assertRaises(RemoteServiceError):
            await client.recognize(make_chunk())


class TestValidateKey(SpeechApiTestCase):
    """Test API key validation."""

    async def test_valid_key(self):
        client = self.make_client(lambda request: httpx.Response(200, json={}))
        validation = await client.validate_key()
        self.assertTrue(validation.valid)
        body = json.loads(self.requests[0].content)
        self.assertEqual(body["config"], {"encoding": "LINEAR16", "languageCode": "pt-BR"})

    async def test_unauthenticated_key(self):
        error = {"error": {"code": 401, "message": "bad key", "status": "UNAUTHENTICATED"}}
        client = self.make_client(lambda request: httpx.Response(401, json=error))
        validation = await client.validate_key()
        self.assertFalse(validation.valid)
        self.assertEqual(validation.http_status, 401)
        self.assertEqual(validation.message, "API key is invalid or not authorized")
        self.assertEqual(len(validation.diagnostics), 2)

    async def test_missing_key(self):
        client = SpeechApiClient("", client=httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200))))
        self.addAsyncCleanup(client.aclose)
        validation = await client.validate_key()
        self.assertFalse(validation.valid)


class TestParseResponse(unittest.TestCase):
    def test_empty_transcript_is_no_result(self):
        self.assertIsNone(parse_response({"results": [{"alternatives": [{"transcript": "  "}]}]}))


if __name__ == "__main__":
    unittest.main()
