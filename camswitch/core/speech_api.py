"""
HTTP client for the Google Cloud Speech-to-Text v1 ``recognize`` endpoint.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import httpx

from ..utils.config import config
from ..utils.errors import RemoteServiceError, describe_service_error
from .types import AudioChunk, RecognitionResult

logger = logging.getLogger(__name__)

# A header-only 16-bit mono WAV used to probe the API key
SILENT_WAV_BASE64 = "UklGRiQAAABXQVZFZm10IBAAAAABAAEARKwAAIhYAQACABAAZGF0YQAAAAA="


@dataclass
class KeyValidation:
    valid: bool
    message: str
    diagnostics: List[str] = field(default_factory=list)
    http_status: Optional[int] = None


def make_http_client() -> httpx.AsyncClient:
    # No read timeout: a late answer is still wanted while the session lives
    return httpx.AsyncClient(timeout=httpx.Timeout(connect=10.0, read=None, write=None, pool=None))


def parse_response(payload: Dict[str, Any], default_confidence: float = config.DEFAULT_CLOUD_CONFIDENCE) -> Optional[RecognitionResult]:
    """Extract the top alternative; None when nothing was recognized."""
    results = payload.get("results") or []
    if not results:
        return None
    try:
        alternative = results[0]["alternatives"][0]
        transcript = str(alternative.get("transcript", "")).strip()
        confidence = alternative.get("confidence") or default_confidence / 100.0
        confidence = float(confidence) * 100.0
    except (KeyError, IndexError, TypeError, AttributeError, ValueError) as e:
        raise RemoteServiceError(f"Malformed recognition response: {e}") from e
    if not transcript:
        return None
    return RecognitionResult(transcript, confidence)


def error_from_response(http_status: int, payload: Any) -> RemoteServiceError:
    """Turn an error response into a RemoteServiceError with diagnostics."""
    status = None
    message = None
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        status = error.get("status")
        message = error.get("message")
    message, diagnostics = describe_service_error(status, message, http_status)
    return RemoteServiceError(message, status=status, http_status=http_status, diagnostics=diagnostics)


class SpeechApiClient:
    """Submits audio chunks for recognition with an API key."""

    def __init__(
        self,
        api_key: str,
        url: str = config.SPEECH_API_URL,
        language_code: str = config.LANGUAGE_CODE,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.url = url
        self.language_code = language_code
        self._client = client or make_http_client()

    def build_request(self, content: str, encoding: str, punctuation: bool = True) -> Dict[str, Any]:
        """Request body; the sample rate is left for the service to detect."""
        request_config: Dict[str, Any] = {
            "encoding": encoding,
            "languageCode": self.language_code,
        }
        if punctuation:
            request_config["enableAutomaticPunctuation"] = True
            request_config["audioChannelCount"] = 1
        return {"config": request_config, "audio": {"content": content}}

    async def recognize(self, chunk: AudioChunk) -> Optional[RecognitionResult]:
        """Recognize one chunk. Raises RemoteServiceError on any failure."""
        logger.debug(f"Sending chunk #{chunk.sequence} ({chunk.encoding}, {len(chunk.data)} bytes)")
        payload = await self._post(self.build_request(chunk.content_base64(), chunk.encoding))
        return parse_response(payload)

    async def validate_key(self) -> KeyValidation:
        """Check that the key works and the Speech-to-Text API is enabled."""
        if not self.api_key:
            return KeyValidation(False, "API key is required")

        logger.info(f"🔑 Testing API key {self.api_key[:10]}...")
        try:
            await self._post(self.build_request(SILENT_WAV_BASE64, "LINEAR16", punctuation=False))
        except RemoteServiceError as e:
            return KeyValidation(False, e.message, e.diagnostics, e.http_status)
        return KeyValidation(True, "API key is valid and Speech-to-Text API is enabled", http_status=200)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = await self._client.post(self.url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            raise RemoteServiceError(f"Speech service unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.is_error or not isinstance(payload, dict) or "error" in payload:
            error = error_from_response(response.status_code, payload)
            logger.error(f"✗ Speech service error {response.status_code}: {error.describe()}")
            raise error
        return payload
