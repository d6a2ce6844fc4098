"""Shared data types for the reconciler, providers and resource stores."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .errors import ReconcileCancelled

ADDRESS_KIND = "A"

# =============================================================================
# Hostname helpers
# =============================================================================


def normalize_hostname(hostname: str) -> str:
    """Strip a single trailing dot and lower-case for comparison."""
    if hostname.endswith("."):
        hostname = hostname[:-1]
    return hostname.lower()


def split_hostname(fqdn: str) -> Tuple[str, str]:
    """Split an FQDN into its first label and the remaining domain.

    "app.example.com" -> ("app", "example.com")
    "sub.app.example.com" -> ("sub", "app.example.com")
    """
    if fqdn.endswith("."):
        fqdn = fqdn[:-1]
    host, sep, domain = fqdn.partition(".")
    if not sep:
        return fqdn, ""
    return host, domain


# =============================================================================
# Enums
# =============================================================================


class Outcome(Enum):
    """Result classification of one reconcile pass.

    RETRYABLE_ERROR passes are picked up again by the next scheduled round.
    FATAL_ERROR means configuration is broken and looping will not help.
    """

    SUCCESS = "success"
    RETRYABLE_ERROR = "retryable-error"
    FATAL_ERROR = "fatal-error"


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class Record:
    """One DNS address mapping under management."""

    name: str
    kind: str
    target: str
    ttl: int = 0
    attributes: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.name.endswith("."):
            object.__setattr__(self, "name", self.name[:-1])


@dataclass(frozen=True)
class ResourceKey:
    """Identity of an owning resource."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class Resource:
    """The reconciler's view of an owning resource.

    `raw` holds the store's backing object so `update` can write the
    finalizers and annotations back without losing other fields.
    """

    key: ResourceKey
    hostnames: List[str] = field(default_factory=list)
    finalizers: List[str] = field(default_factory=list)
    annotations: Dict[str, str] = field(default_factory=dict)
    deleting: bool = False
    resource_version: str = ""
    raw: Any = None


@dataclass(frozen=True)
class ReconcileResult:
    key: ResourceKey
    outcome: Outcome
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SUCCESS


# =============================================================================
# Cancellation
# =============================================================================


class CancelToken:
    """Cancellation signal and optional deadline for a single pass."""

    def __init__(self, deadline: Optional[float] = None):
        self._event = threading.Event()
        self.deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float) -> "CancelToken":
        return cls(deadline=time.monotonic() + seconds)

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.deadline is not None and time.monotonic() >= self.deadline

    def check(self) -> None:
        """Raise ReconcileCancelled if the pass must stop."""
        if not self.cancelled:
            return
        reason = "cancelled" if self._event.is_set() else "deadline exceeded"
        raise ReconcileCancelled(f"reconcile pass {reason}")
