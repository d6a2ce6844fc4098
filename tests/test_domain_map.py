"""Unit tests for DomainMap lookup priority and loading."""

from pathlib import Path

import pytest

from route_dns.domain_map import DomainMap, load_domain_map
from route_dns.errors import ConfigError

# =============================================================================
# Lookup
# =============================================================================


def test_exact_match_beats_wildcard() -> None:
    dm = DomainMap({"*.a.com": "10.0.0.1", "app.a.com": "10.0.0.2"})

    assert dm.lookup("app.a.com") == ("10.0.0.2", True)
    assert dm.lookup("x.a.com") == ("10.0.0.1", True)


def test_wildcard_does_not_match_bare_domain() -> None:
    dm = DomainMap({"*.a.com": "10.0.0.1"})

    assert dm.lookup("a.com") == ("", False)


def test_walk_up_finds_parent_level_entry() -> None:
    dm = DomainMap({"a.com": "10.0.0.3"})

    assert dm.lookup("deep.nested.a.com") == ("10.0.0.3", True)
    assert dm.lookup("a.com") == ("10.0.0.3", True)


def test_wildcard_matches_multiple_labels_deep() -> None:
    dm = DomainMap({"*.mydomain.com": "10.0.0.1", "app2.mydomain.com": "10.0.0.2"})

    assert dm.lookup("deep.nested.mydomain.com") == ("10.0.0.1", True)
    assert dm.lookup("x.app2.mydomain.com") == ("10.0.0.2", True)


def test_more_specific_exact_entry_wins_over_shallower_one() -> None:
    dm = DomainMap({"a.com": "10.0.0.1", "svc.a.com": "10.0.0.2"})

    assert dm.lookup("api.svc.a.com") == ("10.0.0.2", True)
    assert dm.lookup("other.a.com") == ("10.0.0.1", True)


def test_trailing_dot_is_stripped() -> None:
    dm = DomainMap({"my-domain1.com": "10.0.8.100"})

    assert dm.lookup("app.my-domain1.com.") == ("10.0.8.100", True)


def test_lookup_is_case_insensitive() -> None:
    dm = DomainMap({"Example.COM": "10.0.0.1"})

    assert dm.lookup("App.example.com") == ("10.0.0.1", True)


def test_unknown_domain_not_found() -> None:
    dm = DomainMap({"my-domain1.com": "10.0.8.100", "my-domain2.it": "10.0.9.50"})

    assert dm.lookup("unknown.com") == ("", False)
    assert dm.lookup("notmy-domain1.com") == ("", False)
    assert dm.lookup("") == ("", False)


def test_entries_are_copied_on_construction() -> None:
    entries = {"a.com": "10.0.0.1"}
    dm = DomainMap(entries)
    entries["b.com"] = "10.0.0.2"

    assert dm.lookup("b.com") == ("", False)
    assert len(dm) == 1


# =============================================================================
# Loading
# =============================================================================


def test_load_domain_map(tmp_path: Path) -> None:
    path = tmp_path / "domain-map.yaml"
    path.write_text('my-domain1.com: 10.0.8.100\n"*.my-domain2.it": 10.0.9.50\n', encoding="utf-8")

    dm = load_domain_map(str(path))

    assert dm.patterns() == ["*.my-domain2.it", "my-domain1.com"]
    assert dm.lookup("svc.my-domain2.it") == ("10.0.9.50", True)


def test_load_domain_map_empty_file(tmp_path: Path) -> None:
    path = tmp_path / "domain-map.yaml"
    path.write_text("", encoding="utf-8")

    assert len(load_domain_map(str(path))) == 0


def test_load_domain_map_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="reading domain map"):
        load_domain_map(str(tmp_path / "missing.yaml"))


def test_load_domain_map_invalid_yaml(tmp_path: Path) -> None:
    path = tmp_path / "domain-map.yaml"
    path.write_text("a.com: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="parsing domain map"):
        load_domain_map(str(path))


def test_load_domain_map_rejects_list(tmp_path: Path) -> None:
    path = tmp_path / "domain-map.yaml"
    path.write_text("- a.com\n- b.com\n", encoding="utf-8")

    with pytest.raises(ConfigError, match="expected a mapping"):
        load_domain_map(str(path))


@pytest.mark.parametrize(
    "content",
    [
        "app.example.com:\n  ip: 10.0.0.1\n",
        "app.example.com:\n  - 10.0.0.1\n",
        "app.example.com:\n",
    ],
    ids=["mapping", "list", "null"],
)
def test_load_domain_map_rejects_non_scalar_target(tmp_path: Path, content: str) -> None:
    path = tmp_path / "domain-map.yaml"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigError, match="'app.example.com' must be a scalar"):
        load_domain_map(str(path))
