"""OPNsense Unbound host-override provider."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import requests
from requests.auth import HTTPBasicAuth

from .config import _parse_bool, float_setting, int_setting, require_setting
from .errors import RecordNotFoundError, TransportError
from .models import Record, split_hostname
from .providers import Provider

logger = logging.getLogger(__name__)


class OPNsenseProvider(Provider):
    """Manages Unbound host overrides through the OPNsense REST API.

    Every mutation is followed by a service reconfigure so Unbound serves
    the new state.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        api_secret: str,
        *,
        default_ttl: int = 300,
        verify_tls: bool = True,
        timeout_seconds: float = 10.0,
    ):
        self._url = base_url.rstrip("/")
        self.default_ttl = default_ttl
        self._timeout = timeout_seconds
        self._session = requests.Session()
        self._session.auth = HTTPBasicAuth(api_key, api_secret)
        self._session.verify = verify_tls

    @classmethod
    def from_settings(cls, settings: Mapping[str, str]) -> "OPNsenseProvider":
        """Build from provider settings.

        Required: base_url, api_key, api_secret.
        Optional: default_ttl (300), skip_tls_verify (false), timeout (10).
        """
        return cls(
            require_setting(settings, "opnsense", "base_url"),
            require_setting(settings, "opnsense", "api_key"),
            require_setting(settings, "opnsense", "api_secret"),
            default_ttl=int_setting(settings, "opnsense", "default_ttl", 300),
            verify_tls=not _parse_bool(settings.get("skip_tls_verify"), default=False),
            timeout_seconds=float_setting(settings, "opnsense", "timeout", 10.0),
        )

    @property
    def name(self) -> str:
        return "OPNsense Unbound"

    def _request(self, method: str, path: str, operation: str, target: str, body: Any = None) -> Any:
        url = f"{self._url}/{path.lstrip('/')}"
        try:
            response = self._session.request(method, url, json=body, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise TransportError(operation, target, f"{method} {path}: {e}") from e

        if response.status_code != 200:
            raise TransportError(
                operation,
                target,
                f"{path} returned status {response.status_code}: {response.text[:200]}",
            )
        try:
            return response.json()
        except ValueError as e:
            raise TransportError(operation, target, f"decode {path} response: {e}") from e

    def _reconfigure(self, target: str) -> None:
        result = self._request("POST", "unbound/service/reconfigure", "reconfigure", target, {})
        status = result.get("status") if isinstance(result, dict) else None
        logger.debug(f"{self.name} reconfigure completed (status: {status})")

    def _find_override(self, fqdn: str, kind: str, operation: str) -> Optional[str]:
        """Return the uuid of the host override matching fqdn and kind."""
        data = self._request("GET", "unbound/settings/searchHostOverride", operation, fqdn)
        rows = data.get("rows") if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise TransportError(operation, fqdn, "unexpected searchHostOverride response")

        host, domain = split_hostname(fqdn)
        for row in rows:
            if not isinstance(row, dict):
                continue
            if (
                str(row.get("hostname", "")).lower() == host.lower()
                and str(row.get("domain", "")).lower() == domain.lower()
                and str(row.get("rr", "")).lower() == kind.lower()
            ):
                return str(row.get("uuid") or "") or None
        return None

    def _host_body(self, record: Record) -> Dict[str, Dict[str, str]]:
        host, domain = split_hostname(record.name)
        return {
            "host": {
                "enabled": "1",
                "hostname": host,
                "domain": domain,
                "rr": record.kind,
                "server": record.target,
                "ttl": str(record.ttl or self.default_ttl),
                "description": str(record.attributes.get("description", "")),
                "mxprio": "",
                "mx": "",
            }
        }

    def _expect_result(self, data: Any, expected: str, operation: str, target: str) -> None:
        result = data.get("result") if isinstance(data, dict) else None
        if result != expected:
            raise TransportError(operation, target, f"unexpected result: {result}")

    def test_connection(self) -> bool:
        try:
            self._request("GET", "unbound/service/status", "status", self._url)
            logger.info(f"{self.name} connection successful")
            return True
        except TransportError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def exists(self, name: str, kind: str) -> bool:
        logger.debug(f"Checking if record exists: {name}/{kind}")
        return self._find_override(name, kind, "exists") is not None

    def create(self, record: Record) -> None:
        logger.info(f"Creating record {record.name}/{record.kind} -> {record.target}")
        data = self._request(
            "POST",
            "unbound/settings/addHostOverride",
            "create",
            record.name,
            self._host_body(record),
        )
        self._expect_result(data, "saved", "create", record.name)
        logger.info(f"Record created: {record.name} (uuid: {data.get('uuid', '')})")
        self._reconfigure(record.name)

    def update(self, record: Record) -> None:
        logger.info(f"Updating record {record.name}/{record.kind} -> {record.target}")
        uuid = self._find_override(record.name, record.kind, "update")
        if uuid is None:
            raise RecordNotFoundError("update", record.name, record.kind, "no existing override")

        data = self._request(
            "POST",
            f"unbound/settings/setHostOverride/{uuid}",
            "update",
            record.name,
            self._host_body(record),
        )
        self._expect_result(data, "saved", "update", record.name)
        logger.info(f"Record updated: {record.name} (uuid: {uuid})")
        self._reconfigure(record.name)

    def delete(self, name: str, kind: str) -> None:
        logger.info(f"Deleting record {name}/{kind}")
        uuid = self._find_override(name, kind, "delete")
        if uuid is None:
            raise RecordNotFoundError("delete", name, kind, "no existing override")

        data = self._request(
            "POST", f"unbound/settings/delHostOverride/{uuid}", "delete", name, {}
        )
        self._expect_result(data, "deleted", "delete", name)
        logger.info(f"Record deleted: {name} (uuid: {uuid})")
        self._reconfigure(name)
