"""
Data Model
==========
Jobs, log entries, and the typed crawl request accepted at the boundary.

``CrawlRequest.build()`` is the only way an untyped request (CLI flags,
a JSON body) becomes something the engine will accept; malformed input
is rejected there with ``ValidationError`` and never reaches the engine.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from urllib.parse import urlparse

from .errors import ValidationError


def utc_now() -> str:
    """ISO-8601 UTC timestamp used for every job and log time field."""
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Job lifecycle
# ---------------------------------------------------------------------------

class JobStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED)


@dataclass(frozen=True)
class LogEntry:
    timestamp: str
    message: str

    def to_dict(self) -> dict:
        return {"timestamp": self.timestamp, "message": self.message}


@dataclass
class Job:
    """One crawl request and its accumulated state.

    Records handed out by ``JobStore`` are snapshots: mutating them has no
    effect on the stored job.
    """
    id: str
    url: str
    output_dir: str
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    logs: Tuple[LogEntry, ...] = ()
    archive_path: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=utc_now)
    updated_at: str = field(default_factory=utc_now)

    @property
    def archive_available(self) -> bool:
        return bool(self.archive_path) and self.status == JobStatus.COMPLETED

    def snapshot(self) -> "Job":
        return replace(self, logs=tuple(self.logs))

    def to_dict(self) -> dict:
        """Serialisable job snapshot for any status surface."""
        return {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "progress": int(self.progress),
            "logs": [entry.to_dict() for entry in self.logs],
            "archive_available": self.archive_available,
            "error": self.error,
            "output_dir": self.output_dir,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


# ---------------------------------------------------------------------------
# Request descriptors
# ---------------------------------------------------------------------------

_ENV_PREFIX = "MIRROR"


@dataclass(frozen=True)
class AuthDescriptor:
    """Login form description: credentials plus four CSS selectors.

    Without ``success_selector`` the authenticator falls back to a fixed
    post-submit delay instead of a verified wait.
    """
    username: str = ""
    password: str = ""
    username_selector: str = ""
    password_selector: str = ""
    submit_selector: str = ""
    success_selector: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.username and self.password)

    @property
    def is_verified(self) -> bool:
        return bool(self.success_selector)

    def resolve_credentials(self) -> "AuthDescriptor":
        """Fill missing credentials from ``MIRROR_USERNAME`` / ``MIRROR_PASSWORD``."""
        if self.is_complete:
            return self
        return replace(
            self,
            username=self.username or os.environ.get(f"{_ENV_PREFIX}_USERNAME", ""),
            password=self.password or os.environ.get(f"{_ENV_PREFIX}_PASSWORD", ""),
        )

    def __repr__(self) -> str:
        # Credentials must never end up in logs.
        return (
            f"AuthDescriptor(username={'***' if self.username else ''!r}, "
            f"username_selector={self.username_selector!r}, "
            f"password_selector={self.password_selector!r}, "
            f"submit_selector={self.submit_selector!r}, "
            f"success_selector={self.success_selector!r})"
        )

    # Accepted keys for ``from_mapping`` (camelCase aliases match JSON bodies)
    _ALIASES = {
        "username": "username",
        "password": "password",
        "username_selector": "username_selector",
        "usernameSelector": "username_selector",
        "password_selector": "password_selector",
        "passwordSelector": "password_selector",
        "submit_selector": "submit_selector",
        "submitSelector": "submit_selector",
        "success_selector": "success_selector",
        "successSelector": "success_selector",
    }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AuthDescriptor":
        values: Dict[str, str] = {}
        for key, value in data.items():
            name = cls._ALIASES.get(key)
            if name is None:
                raise ValidationError(f"Unknown authentication field: {key}")
            if value is None:
                continue
            if not isinstance(value, str):
                raise ValidationError(f"Authentication field {key} must be a string")
            values[name] = value.strip() if name != "password" else value
        return cls(**values)


_PROXY_SCHEMES = ("http", "https", "socks4", "socks5")


@dataclass(frozen=True)
class ProxyDescriptor:
    """Single upstream proxy applied to all of a job's network egress."""
    server: str

    @classmethod
    def parse(cls, value: str) -> "ProxyDescriptor":
        value = (value or "").strip()
        parsed = urlparse(value)
        if parsed.scheme not in _PROXY_SCHEMES or not parsed.hostname:
            raise ValidationError(f"Invalid proxy URI: {value!r}")
        return cls(server=value)

    def for_playwright(self) -> dict:
        return {"server": self.server}

    def for_requests(self) -> dict:
        return {"http": self.server, "https": self.server}


@dataclass(frozen=True)
class CrawlRequest:
    """Validated crawl request. Build with ``CrawlRequest.build``."""
    url: str
    auth: Optional[AuthDescriptor] = None
    proxy: Optional[ProxyDescriptor] = None

    @classmethod
    def build(
        cls,
        url: Optional[str],
        auth: Union[None, AuthDescriptor, Mapping[str, Any]] = None,
        proxy: Union[None, str, ProxyDescriptor] = None,
    ) -> "CrawlRequest":
        """Validate raw inputs and return a ``CrawlRequest``.

        Raises:
            ValidationError: if the seed URL is missing or not an absolute
                http(s) URL, or if the auth/proxy descriptors are malformed.
        """
        if not url or not isinstance(url, str) or not url.strip():
            raise ValidationError("URL is required")
        url = url.strip()
        try:
            parsed = urlparse(url)
        except ValueError as exc:
            raise ValidationError(f"Invalid URL: {exc}") from exc
        if parsed.scheme not in ("http", "https"):
            raise ValidationError(f"URL must use http or https: {url}")
        if not parsed.hostname:
            raise ValidationError(f"URL must be absolute: {url}")

        if auth is not None and not isinstance(auth, AuthDescriptor):
            if not isinstance(auth, Mapping):
                raise ValidationError("Authentication descriptor must be an object")
            auth = AuthDescriptor.from_mapping(auth)

        if proxy is not None and not isinstance(proxy, ProxyDescriptor):
            if not isinstance(proxy, str):
                raise ValidationError("Proxy must be a URI string")
            proxy = ProxyDescriptor.parse(proxy) if proxy.strip() else None

        return cls(url=url, auth=auth, proxy=proxy)

    def describe(self) -> List[str]:
        lines = [f"URL: {self.url}"]
        if self.proxy:
            lines.append(f"Proxy: {self.proxy.server}")
        if self.auth:
            lines.append(
                "Auth: "
                + ("verified (success selector)" if self.auth.is_verified else "unverified")
            )
        return lines
