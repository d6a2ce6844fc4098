"""AdGuard Home DNS rewrite provider."""

from __future__ import annotations

import logging
from typing import List, Mapping, Tuple

import requests
from requests.auth import HTTPBasicAuth

from .config import float_setting, require_setting
from .errors import RecordConflictError, RecordNotFoundError, TransportError
from .models import Record, normalize_hostname
from .providers import Provider

logger = logging.getLogger(__name__)


class AdGuardProvider(Provider):
    """AdGuard Home DNS provider implementation.

    Rewrites are plain domain -> answer pairs with no record type, so the
    `kind` argument is accepted and ignored.
    """

    def __init__(self, url: str, username: str = "", password: str = "", timeout_seconds: float = 5.0):
        self._url = url.rstrip("/")
        self._timeout = timeout_seconds
        self._session = requests.Session()
        if username and password:
            self._session.auth = HTTPBasicAuth(username, password)

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "AdGuardProvider":
        """Build from provider settings: url (required), username, password, timeout."""
        return cls(
            require_setting(settings, "adguard", "url"),
            str(settings.get("username") or ""),
            str(settings.get("password") or ""),
            timeout_seconds=float_setting(settings, "adguard", "timeout", 5.0),
        )

    @property
    def name(self) -> str:
        return "AdGuard Home"

    def _post(self, path: str, payload: dict, operation: str, target: str) -> None:
        try:
            response = self._session.post(f"{self._url}{path}", json=payload, timeout=self._timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TransportError(operation, target, str(e)) from e

    def _rewrites(self, domain: str, operation: str) -> List[Tuple[str, str]]:
        """Return (domain, answer) for every rewrite matching domain."""
        try:
            response = self._session.get(f"{self._url}/control/rewrite/list", timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.exceptions.RequestException, ValueError) as e:
            raise TransportError(operation, domain, str(e)) from e

        if not isinstance(data, list):
            raise TransportError(operation, domain, "unexpected rewrite list response")

        wanted = normalize_hostname(domain)
        rewrites = []
        for r in data:
            rewrite_domain = r.get("domain") if isinstance(r, dict) else None
            answer = r.get("answer") if isinstance(r, dict) else None
            if not isinstance(rewrite_domain, str) or not isinstance(answer, str):
                logger.warning(f"Skipping malformed rewrite: {r}")
                continue
            if normalize_hostname(rewrite_domain) == wanted:
                rewrites.append((rewrite_domain, answer))
        return rewrites

    def test_connection(self) -> bool:
        try:
            response = self._session.get(f"{self._url}/control/status", timeout=self._timeout)
            response.raise_for_status()
            logger.info(f"{self.name} connection successful")
            return True
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def exists(self, name: str, kind: str) -> bool:
        return bool(self._rewrites(name, "exists"))

    def create(self, record: Record) -> None:
        if self._rewrites(record.name, "create"):
            raise RecordConflictError("create", record.name, record.kind, "rewrite already exists")
        self._post(
            "/control/rewrite/add",
            {"domain": record.name, "answer": record.target},
            "create",
            record.name,
        )
        logger.info(f"Added DNS rewrite: {record.name} -> {record.target}")

    def update(self, record: Record) -> None:
        rewrites = self._rewrites(record.name, "update")
        if not rewrites:
            raise RecordNotFoundError("update", record.name, record.kind, "no existing rewrite")

        # Collapse duplicates so the domain ends up with exactly one answer.
        for domain, answer in rewrites[1:]:
            self._post(
                "/control/rewrite/delete",
                {"domain": domain, "answer": answer},
                "update",
                record.name,
            )
        domain, old_answer = rewrites[0]
        self._post(
            "/control/rewrite/update",
            {
                "target": {"domain": domain, "answer": old_answer},
                "update": {"domain": record.name, "answer": record.target},
            },
            "update",
            record.name,
        )
        logger.info(f"Updated DNS rewrite: {record.name} {old_answer} -> {record.target}")

    def delete(self, name: str, kind: str) -> None:
        rewrites = self._rewrites(name, "delete")
        if not rewrites:
            raise RecordNotFoundError("delete", name, kind, "no existing rewrite")
        for domain, answer in rewrites:
            self._post("/control/rewrite/delete", {"domain": domain, "answer": answer}, "delete", name)
            logger.info(f"Deleted DNS rewrite: {domain} -> {answer}")
