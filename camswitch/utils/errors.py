"""
Error types raised by the voice-command pipeline.
"""

from typing import List, Optional


class CamSwitchError(Exception):
    """Base class for camswitch errors."""


class DeviceUnavailable(CamSwitchError):
    """The microphone was denied, missing or could not be opened."""


class UnsupportedBackend(CamSwitchError):
    """Local speech recognition is not available on this runtime."""


class RemoteServiceError(CamSwitchError):
    """The remote recognition call failed or returned an error payload."""

    def __init__(
        self,
        message: str,
        status: Optional[str] = None,
        http_status: Optional[int] = None,
        diagnostics: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status = status
        self.http_status = http_status
        self.diagnostics = list(diagnostics or [])

    def describe(self) -> str:
        """One-line summary including the diagnostics."""
        if not self.diagnostics:
            return self.message
        return f"{self.message} ({'; '.join(self.diagnostics)})"


def describe_service_error(status: Optional[str], message: Optional[str] = None, http_status: Optional[int] = None):
    """Map a remote error status to a readable message and diagnostics."""
    if status == "INVALID_ARGUMENT":
        return "API key is invalid or badly formatted", [
            "Check that the API key is correct",
        ]
    if status == "PERMISSION_DENIED":
        return "Speech-to-Text API is not enabled for this project", [
            "Enable the Cloud Speech-to-Text API in the Google Cloud Console",
            "Check that the API key is allowed to call Speech-to-Text",
        ]
    if status == "UNAUTHENTICATED":
        return "API key is invalid or not authorized", [
            "Check that the API key was created correctly",
            "Check the API key restrictions (domains, IPs)",
        ]
    if status:
        return message or "Speech service rejected the request", [
            f"Uncatalogued error: {status}",
        ]
    diagnostics = []
    if http_status is not None:
        diagnostics.append(f"HTTP status: {http_status}")
    diagnostics.append("Unexpected response from the speech service")
    return message or "Speech service request failed", diagnostics
