"""Unit tests for the Provider contract and the provider registry."""

from typing import Dict, List, Mapping, Tuple

import pytest

from route_dns.adguard import AdGuardProvider
from route_dns.errors import (
    ConfigError,
    RecordConflictError,
    RecordNotFoundError,
    UnsupportedProviderError,
)
from route_dns.models import Record
from route_dns.opnsense import OPNsenseProvider
from route_dns.providers import Provider, ProviderRegistry, default_registry


class DictProvider(Provider):
    """In-memory provider keyed by (name, kind) with call tracking."""

    def __init__(self, settings: Mapping[str, str] | None = None):
        self.settings = dict(settings or {})
        self.records: Dict[Tuple[str, str], str] = {}
        self.calls: List[str] = []

    @property
    def name(self) -> str:
        return "Dict"

    def exists(self, name: str, kind: str) -> bool:
        self.calls.append("exists")
        return (name, kind) in self.records

    def create(self, record: Record) -> None:
        self.calls.append("create")
        if (record.name, record.kind) in self.records:
            raise RecordConflictError("create", record.name, record.kind)
        self.records[(record.name, record.kind)] = record.target

    def update(self, record: Record) -> None:
        self.calls.append("update")
        if (record.name, record.kind) not in self.records:
            raise RecordNotFoundError("update", record.name, record.kind)
        self.records[(record.name, record.kind)] = record.target

    def delete(self, name: str, kind: str) -> None:
        self.calls.append("delete")
        if (name, kind) not in self.records:
            raise RecordNotFoundError("delete", name, kind)
        del self.records[(name, kind)]


# =============================================================================
# Upsert
# =============================================================================


def test_upsert_creates_when_absent() -> None:
    provider = DictProvider()

    provider.upsert(Record("app.example.com", "A", "10.0.0.1"))

    assert provider.calls == ["exists", "create"]
    assert provider.records == {("app.example.com", "A"): "10.0.0.1"}


def test_upsert_twice_leaves_single_record_with_latest_target() -> None:
    provider = DictProvider()

    provider.upsert(Record("app.example.com", "A", "10.0.0.1"))
    provider.upsert(Record("app.example.com", "A", "10.0.0.2"))

    assert provider.calls == ["exists", "create", "exists", "update"]
    assert provider.records == {("app.example.com", "A"): "10.0.0.2"}


def test_default_test_connection_is_true() -> None:
    assert DictProvider().test_connection() is True


def test_record_strips_trailing_dot() -> None:
    assert Record("app.example.com.", "A", "10.0.0.1").name == "app.example.com"


# =============================================================================
# Registry
# =============================================================================


class TestProviderRegistry:
    def test_register_and_create(self) -> None:
        registry = ProviderRegistry()
        registry.register("dict", DictProvider)

        provider = registry.create("dict", {"key": "value"})

        assert isinstance(provider, DictProvider)
        assert provider.settings == {"key": "value"}
        assert "dict" in registry
        assert registry.names() == ["dict"]

    def test_duplicate_registration_is_a_programming_error(self) -> None:
        registry = ProviderRegistry()
        registry.register("dict", DictProvider)

        with pytest.raises(RuntimeError, match="already registered"):
            registry.register("dict", DictProvider)

    def test_unknown_provider_lists_registered_names(self) -> None:
        registry = ProviderRegistry()
        registry.register("b", DictProvider)
        registry.register("a", DictProvider)

        with pytest.raises(UnsupportedProviderError) as exc_info:
            registry.create("route53", {})

        assert exc_info.value.name == "route53"
        assert exc_info.value.registered == ["a", "b"]
        assert "registered: a, b" in str(exc_info.value)

    def test_registries_are_independent(self) -> None:
        first = ProviderRegistry()
        first.register("dict", DictProvider)

        assert "dict" not in ProviderRegistry()

    def test_factory_errors_propagate(self) -> None:
        registry = default_registry()

        with pytest.raises(ConfigError, match="base_url"):
            registry.create("opnsense", {})


class TestDefaultRegistry:
    def test_bundled_backends(self) -> None:
        assert default_registry().names() == ["adguard", "opnsense"]

    def test_creates_opnsense(self) -> None:
        provider = default_registry().create(
            "opnsense",
            {"base_url": "https://fw/api", "api_key": "k", "api_secret": "s"},
        )

        assert isinstance(provider, OPNsenseProvider)

    def test_creates_adguard(self) -> None:
        provider = default_registry().create("adguard", {"url": "http://adguard"})

        assert isinstance(provider, AdGuardProvider)
