"""Tracks which hostnames were synchronized on the previous pass.

The managed set lives on the owning resource as a JSON list annotation so it
survives restarts and is shared by every replica reading the resource.
"""

from __future__ import annotations

import json
import logging
from typing import Iterable, List, Mapping

from .models import normalize_hostname

logger = logging.getLogger(__name__)

MANAGED_HOSTNAMES_ANNOTATION = "route-dns/managed-hostnames"


def dedupe(hostnames: Iterable[str]) -> List[str]:
    """Drop repeated hostnames, keeping the first occurrence."""
    seen = set()
    result = []
    for hostname in hostnames:
        key = normalize_hostname(hostname)
        if key in seen:
            continue
        seen.add(key)
        result.append(hostname)
    return result


def diff(previous: Iterable[str], current: Iterable[str]) -> List[str]:
    """Return hostnames in `previous` but not in `current`, in `previous` order."""
    current_keys = {normalize_hostname(h) for h in current}
    return [h for h in dedupe(previous) if normalize_hostname(h) not in current_keys]


def same_set(a: Iterable[str], b: Iterable[str]) -> bool:
    return {normalize_hostname(h) for h in a} == {normalize_hostname(h) for h in b}


def load_managed(
    annotations: Mapping[str, str], key: str = MANAGED_HOSTNAMES_ANNOTATION
) -> List[str]:
    """Parse the persisted managed set. Missing or corrupt state is an empty set."""
    raw = annotations.get(key)
    if not raw:
        return []
    try:
        data = json.loads(raw)
    except ValueError as e:
        logger.warning(f"Ignoring unparsable managed hostnames annotation {key}: {e}")
        return []
    if not isinstance(data, list):
        logger.warning(f"Ignoring managed hostnames annotation {key}: expected a JSON list")
        return []
    return [h for h in data if isinstance(h, str) and h]


def dump_managed(hostnames: Iterable[str]) -> str:
    return json.dumps(list(hostnames), separators=(",", ":"))
