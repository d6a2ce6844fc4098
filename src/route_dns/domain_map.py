"""Static hostname -> target table with exact/wildcard/walk-up lookup."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from .errors import ConfigError
from .models import normalize_hostname

logger = logging.getLogger(__name__)


class DomainMap:
    """Maps domain patterns to record targets.

    Patterns are either bare domains ("example.com") or wildcards
    ("*.example.com"). The table is copied on construction and never
    mutated afterwards, so lookups are safe from any number of threads.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, str] = {
            normalize_hostname(pattern): target for pattern, target in (entries or {}).items()
        }

    def __len__(self) -> int:
        return len(self._entries)

    def patterns(self) -> List[str]:
        return sorted(self._entries)

    def lookup(self, hostname: str) -> Tuple[str, bool]:
        """Resolve a hostname to its target.

        Walks from the full hostname towards the root one label at a time.
        At each step an exact entry wins, then the wildcard covering that
        step's parent. A wildcard never matches its own bare domain.

        Returns:
            (target, True) on a match, ("", False) otherwise.
        """
        h = normalize_hostname(hostname)
        while h:
            target = self._entries.get(h)
            if target is not None:
                return target, True
            _, sep, parent = h.partition(".")
            if not sep:
                break
            target = self._entries.get(f"*.{parent}")
            if target is not None:
                return target, True
            h = parent
        return "", False


def load_domain_map(path: str) -> DomainMap:
    """Load a domain map from a YAML file of `pattern: target` pairs.

    Raises:
        ConfigError: If the file cannot be read or does not parse into a mapping.
    """
    try:
        text = Path(path).read_text("utf-8")
    except OSError as e:
        raise ConfigError(f"reading domain map file {path}: {e}") from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"parsing domain map file {path}: {e}") from e

    if data is None:
        logger.warning(f"Domain map {path} is empty")
        return DomainMap()
    if not isinstance(data, dict):
        raise ConfigError(
            f"parsing domain map file {path}: expected a mapping, got {type(data).__name__}"
        )

    entries: Dict[str, str] = {}
    for pattern, target in data.items():
        if target is None or isinstance(target, (dict, list)):
            raise ConfigError(
                f"parsing domain map file {path}: target for '{pattern}' must be a scalar value"
            )
        entries[str(pattern)] = str(target)
    return DomainMap(entries)
