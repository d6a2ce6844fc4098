"""Reconcile loop for one owning resource.

A resource moves through three states:

    Unmanaged  no finalizer. The first pass adds the finalizer and stops;
               DNS work starts on the next pass.
    Active     finalizer present. Records for removed hostnames are deleted,
               then current hostnames are created (or upserted), then the
               managed set is persisted if it changed.
    Deleting   deletion pending. Every record is deleted, then the finalizer
               is removed so the store can finish the deletion.

Any provider failure aborts the pass before the managed set is written, so
re-running a pass from scratch is always safe.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, List, Optional

from .domain_map import DomainMap
from .errors import (
    ConfigError,
    RecordNotFoundError,
    ResourceConflictError,
    ResourceNotFoundError,
    RouteDNSError,
    UnsupportedProviderError,
)
from .models import (
    ADDRESS_KIND,
    CancelToken,
    Outcome,
    ReconcileResult,
    Record,
    Resource,
    ResourceKey,
)
from .providers import Provider
from .store import ResourceStore
from .tracker import (
    MANAGED_HOSTNAMES_ANNOTATION,
    dedupe,
    diff,
    dump_managed,
    load_managed,
    same_set,
)

logger = logging.getLogger(__name__)

FINALIZER = "route-dns/cleanup"
RECORD_DESCRIPTION = "managed by route-dns"


# =============================================================================
# Conflict Retry
# =============================================================================


def apply_with_retry(
    store: ResourceStore,
    key: ResourceKey,
    mutate: Callable[[Resource], bool],
    *,
    attempts: int = 5,
    delay: float = 0.01,
    backoff: float = 1.0,
    cancel: Optional[CancelToken] = None,
) -> bool:
    """Re-fetch, mutate and write a resource, retrying on version conflicts.

    Args:
        mutate: Applies the intended change to a fresh copy. Returns False
            when the copy already has it, in which case nothing is written.
        attempts: Total number of write attempts.

    Returns:
        True if a write was made, False if the mutation was already applied.

    Raises:
        ResourceConflictError: Every attempt hit a conflict.
    """
    if attempts < 1:
        raise ValueError("attempts must be at least 1")

    wait = delay
    for attempt in range(1, attempts + 1):
        if cancel is not None:
            cancel.check()
        resource = store.get(key)
        if not mutate(resource):
            return False
        try:
            store.update(resource)
            return True
        except ResourceConflictError:
            if attempt == attempts:
                logger.error(f"Giving up on {key} after {attempts} conflicting writes")
                raise
            logger.warning(
                f"Conflict writing {key} (attempt {attempt}/{attempts}), retrying in {wait:.2f}s"
            )
            if wait > 0:
                time.sleep(wait)
            wait *= backoff
    return False


# =============================================================================
# Reconciler
# =============================================================================


class Reconciler:
    def __init__(
        self,
        *,
        store: ResourceStore,
        provider: Provider,
        domain_map: DomainMap,
        upsert: bool = False,
        conflict_retries: int = 5,
        retry_delay: float = 0.01,
        finalizer: str = FINALIZER,
        annotation: str = MANAGED_HOSTNAMES_ANNOTATION,
    ):
        self.store = store
        self.provider = provider
        self.domain_map = domain_map
        self.upsert = upsert
        self.conflict_retries = conflict_retries
        self.retry_delay = retry_delay
        self.finalizer = finalizer
        self.annotation = annotation

    def reconcile(self, key: ResourceKey, cancel: Optional[CancelToken] = None) -> ReconcileResult:
        """Run one pass for `key` and classify the outcome."""
        cancel = cancel or CancelToken()
        try:
            self._reconcile(key, cancel)
        except ResourceNotFoundError:
            logger.debug(f"{key}: resource not found, nothing to do")
        except (ConfigError, UnsupportedProviderError) as e:
            logger.error(f"{key}: reconcile failed with a configuration error: {e}")
            return ReconcileResult(key, Outcome.FATAL_ERROR, e)
        except RouteDNSError as e:
            logger.error(f"{key}: reconcile failed: {e}")
            return ReconcileResult(key, Outcome.RETRYABLE_ERROR, e)
        return ReconcileResult(key, Outcome.SUCCESS)

    def _reconcile(self, key: ResourceKey, cancel: CancelToken) -> None:
        cancel.check()
        resource = self.store.get(key)

        if resource.deleting:
            self._finalize(resource, cancel)
            return

        if self.finalizer not in resource.finalizers:
            self._add_finalizer(key, cancel)
            return

        self._sync(resource, cancel)

    def _apply(self, key: ResourceKey, mutate: Callable[[Resource], bool], cancel: CancelToken) -> bool:
        return apply_with_retry(
            self.store,
            key,
            mutate,
            attempts=self.conflict_retries,
            delay=self.retry_delay,
            cancel=cancel,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def _add_finalizer(self, key: ResourceKey, cancel: CancelToken) -> None:
        def mutate(resource: Resource) -> bool:
            if resource.deleting or self.finalizer in resource.finalizers:
                return False
            resource.finalizers.append(self.finalizer)
            return True

        if self._apply(key, mutate, cancel):
            logger.info(f"{key}: added finalizer {self.finalizer}")

    def _finalize(self, resource: Resource, cancel: CancelToken) -> None:
        key = resource.key
        if self.finalizer not in resource.finalizers:
            logger.debug(f"{key}: being deleted and holds no finalizer, nothing to do")
            return

        declared = dedupe(resource.hostnames)
        leftovers = diff(load_managed(resource.annotations, self.annotation), declared)
        logger.info(f"{key}: deleting DNS records for {len(declared) + len(leftovers)} hostname(s)")
        for hostname in declared + leftovers:
            self._delete(key, hostname, cancel)

        def mutate(fresh: Resource) -> bool:
            if self.finalizer not in fresh.finalizers:
                return False
            fresh.finalizers = [f for f in fresh.finalizers if f != self.finalizer]
            return True

        if self._apply(key, mutate, cancel):
            logger.info(f"{key}: removed finalizer {self.finalizer}")

    # -------------------------------------------------------------------------
    # Steady state
    # -------------------------------------------------------------------------

    def _sync(self, resource: Resource, cancel: CancelToken) -> None:
        key = resource.key
        previous = load_managed(resource.annotations, self.annotation)
        current = dedupe(resource.hostnames)

        # Deletions always run before creations so a hostname that moved
        # between targets is never recreated and then removed.
        for hostname in diff(previous, current):
            logger.info(f"{key}: hostname {hostname} removed, deleting DNS record")
            self._delete(key, hostname, cancel)

        for hostname in current:
            self._ensure(key, hostname, cancel)

        if same_set(previous, current):
            return
        self._write_managed(key, current, cancel)

    def _ensure(self, key: ResourceKey, hostname: str, cancel: CancelToken) -> None:
        target, found = self.domain_map.lookup(hostname)
        if not found:
            logger.debug(f"{key}: no domain mapping for {hostname}, skipping")
            return

        logger.debug(f"{key}: resolved {hostname} -> {target}")
        record = Record(
            name=hostname,
            kind=ADDRESS_KIND,
            target=target,
            attributes={"description": RECORD_DESCRIPTION},
        )

        cancel.check()
        if self.upsert:
            self.provider.upsert(record)
            logger.info(f"{key}: upserted DNS record {hostname} -> {target}")
            return

        # Create-only mode never corrects drift on records that already exist.
        if self.provider.exists(hostname, ADDRESS_KIND):
            logger.debug(f"{key}: DNS record {hostname} already present, skipping")
            return
        cancel.check()
        self.provider.create(record)
        logger.info(f"{key}: created DNS record {hostname} -> {target}")

    def _delete(self, key: ResourceKey, hostname: str, cancel: CancelToken) -> None:
        cancel.check()
        try:
            self.provider.delete(hostname, ADDRESS_KIND)
        except RecordNotFoundError:
            logger.debug(f"{key}: DNS record {hostname} already absent")
            return
        logger.info(f"{key}: deleted DNS record {hostname}")

    def _write_managed(self, key: ResourceKey, hostnames: List[str], cancel: CancelToken) -> None:
        value = dump_managed(hostnames)

        def mutate(resource: Resource) -> bool:
            if resource.annotations.get(self.annotation) == value:
                return False
            resource.annotations[self.annotation] = value
            return True

        self._apply(key, mutate, cancel)
        logger.debug(f"{key}: managed hostnames now {hostnames}")
