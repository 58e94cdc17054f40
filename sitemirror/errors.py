"""
Error Taxonomy
==============
Two-tier failure model for mirror jobs.

Fatal (surface as job failure):
    - ``ValidationError``  : bad crawl request, rejected before a job exists
    - ``SetupError``       : browser launch failed or seed page unreachable
    - ``ArchiveError``     : output directory could not be packaged

Recoverable (logged, never raised past the loop iteration):
    - ``NavigationError``        : page timeout / DNS / connection failure
    - ``AssetError``             : any asset fetch failure
    - ``AuthenticationWarning``  : any login step failure

Recoverable failures are captured as ``RecoverableError`` records so the
engine can log them uniformly.
"""

from __future__ import annotations

from dataclasses import dataclass


class MirrorError(Exception):
    """Base class for all sitemirror errors."""


class ValidationError(MirrorError):
    """Crawl request rejected at the boundary."""


class RendererError(MirrorError):
    """The rendering engine rejected an operation (selector wait, fill, click)."""


class NavigationError(RendererError):
    """The renderer could not load a page within its timeout."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"{reason} ({url})")
        self.url = url
        self.reason = reason


class AssetError(MirrorError):
    """A single asset could not be fetched or written."""


class AuthenticationWarning(MirrorError):
    """A login step failed; the crawl continues unauthenticated."""


class ArchiveError(MirrorError):
    """The output directory could not be packaged."""


class SetupError(MirrorError):
    """The rendering session could not be started or the seed page is unreachable."""


class JobNotFound(MirrorError, KeyError):
    """No job is registered under the given identifier."""

    def __str__(self) -> str:
        return f"Job not found: {self.args[0] if self.args else ''}"


class JobConflict(MirrorError):
    """A run is already active for this job."""


@dataclass(frozen=True)
class RecoverableError:
    """A failure that was handled locally and only needs to be logged."""
    kind: str
    url: str
    message: str

    @classmethod
    def from_exception(cls, exc: BaseException, url: str = "") -> "RecoverableError":
        return cls(kind=type(exc).__name__, url=url, message=str(exc))

    def describe(self) -> str:
        if self.url:
            return f"{self.kind} on {self.url}: {self.message}"
        return f"{self.kind}: {self.message}"
