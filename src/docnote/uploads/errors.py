"""Error taxonomy for the upload pipeline."""

from __future__ import annotations

from typing import Any, Sequence


class UploadError(RuntimeError):
    """Base class for errors surfaced to upload clients."""

    status_code = 500

    def details(self) -> dict[str, Any]:
        return {}


class MissingAudioPart(UploadError):
    """Raised when a request carries no binary audio part."""

    status_code = 400

    def __init__(self, message: str = "No audio uploaded") -> None:
        super().__init__(message)


class EmptyUpload(UploadError):
    """Raised when the audio part contains no bytes."""

    status_code = 400


class UploadTooLarge(UploadError):
    """Raised when a part exceeds the configured size limit."""

    status_code = 413


class InvalidChunk(UploadError):
    """Raised when chunk positional metadata is inconsistent."""

    status_code = 400


class SessionNotFound(UploadError):
    """Raised when finalize references a session that is not registered."""

    status_code = 404

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id

    def details(self) -> dict[str, Any]:
        return {"sessionId": self.session_id}


class IncompleteSession(UploadError):
    """Raised when finalize is called before every chunk has arrived."""

    status_code = 400

    def __init__(self, session_id: str, received: Sequence[int], missing: Sequence[int]) -> None:
        super().__init__(f"Missing chunks for session {session_id}: {list(missing)}")
        self.session_id = session_id
        self.received = list(received)
        self.missing = list(missing)

    def details(self) -> dict[str, Any]:
        return {"sessionId": self.session_id, "received": self.received, "missing": self.missing}


class UpstreamFailure(UploadError):
    """Raised when a storage, AI or database collaborator fails."""

    status_code = 502

    def __init__(self, collaborator: str, message: str) -> None:
        super().__init__(f"{collaborator} failed: {message}")
        self.collaborator = collaborator

    def details(self) -> dict[str, Any]:
        return {"collaborator": self.collaborator}


__all__ = [
    "EmptyUpload",
    "IncompleteSession",
    "InvalidChunk",
    "MissingAudioPart",
    "SessionNotFound",
    "UploadError",
    "UploadTooLarge",
    "UpstreamFailure",
]
