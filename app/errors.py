"""Exception types shared by the catalog core."""

from __future__ import annotations


class StreamShelfError(Exception):
    """Base class for errors raised by the catalog core."""


class UpstreamError(StreamShelfError):
    """TMDB answered with a non-success status or could not be reached."""

    def __init__(self, status: int | None, message: str):
        super().__init__(f"TMDB request failed ({status}): {message}")
        self.status = status
        self.message = message

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class NotFoundError(StreamShelfError, KeyError):
    """Lookup miss in the local store or at the provider."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages for API payloads.
        return str(self.args[0]) if self.args else "Not found"


class DuplicateItemError(StreamShelfError, ValueError):
    """An item with the same identifier already exists in the list."""


class InvalidInputError(StreamShelfError, ValueError):
    """A required identifier or field is missing."""
