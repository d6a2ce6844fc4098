#!/usr/bin/env python3
"""route-dns - HTTPRoute hostname to DNS synchronization

Keeps a DNS backend in sync with the hostnames declared on Gateway API
HTTPRoute objects. Each hostname is resolved to a record target through a
static domain map; records are removed again when a hostname disappears from
its route or the route is deleted (a finalizer holds the route until its
records are gone).

Supported DNS Providers:
    - opnsense: OPNsense Unbound host overrides
    - adguard: AdGuard Home DNS rewrites

Environment variables:

    Static configuration:
        DOMAIN_MAP_PATH        YAML file mapping domain patterns to targets
                               (default: configs/domain-map.yaml)
                               Example:
                                 "*.example.com": 10.0.0.1
                                 app.example.com: 10.0.0.2
                                 internal.lan: 10.0.9.50

        DNS_PROVIDER_PATH      YAML file selecting the DNS provider
                               (default: configs/dns-provider.yaml)
                               Example:
                                 provider: opnsense
                                 upsert: false
                                 settings:
                                   base_url: https://opnsense.lan/api
                                   api_key: ${OPNSENSE_API_KEY}
                                   api_secret: ${OPNSENSE_API_SECRET}

                               upsert: false  create missing records only
                               upsert: true   create or update on every pass

    Kubernetes:
        WATCH_NAMESPACE        Only reconcile HTTPRoutes in this namespace
                               (default: all namespaces)

    Runtime:
        SYNC_MODE              "once" or "watch" (polling loop) (default: watch)
        POLL_INTERVAL_SECONDS  Poll interval in watch mode (default: 60, minimum 5)
        RECONCILE_WORKERS      Routes reconciled in parallel (default: 4)
        CONFLICT_RETRIES       Write attempts on resource version conflicts (default: 5)
        PASS_TIMEOUT_SECONDS   Deadline for a single route's pass (default: 60)
        LOG_LEVEL              DEBUG, INFO, WARNING, ERROR (default: INFO)
"""

from __future__ import annotations

import logging
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List

from .config import load_provider_config
from .domain_map import load_domain_map
from .errors import ConfigError, RouteDNSError, UnsupportedProviderError
from .models import CancelToken, Outcome, ReconcileResult, ResourceKey
from .providers import default_registry
from .reconciler import Reconciler
from .store import HTTPRouteStore, ResourceStore, load_kube_config

# =============================================================================
# Configuration
# =============================================================================

DOMAIN_MAP_PATH = os.getenv("DOMAIN_MAP_PATH", "configs/domain-map.yaml")
DNS_PROVIDER_PATH = os.getenv("DNS_PROVIDER_PATH", "configs/dns-provider.yaml")
WATCH_NAMESPACE = os.getenv("WATCH_NAMESPACE", "").strip()

SYNC_MODE = os.getenv("SYNC_MODE", "watch").lower().strip()
POLL_INTERVAL_SECONDS = int(os.getenv("POLL_INTERVAL_SECONDS", "60"))
RECONCILE_WORKERS = int(os.getenv("RECONCILE_WORKERS", "4"))
CONFLICT_RETRIES = int(os.getenv("CONFLICT_RETRIES", "5"))
PASS_TIMEOUT_SECONDS = float(os.getenv("PASS_TIMEOUT_SECONDS", "60"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =============================================================================
# Logging Setup
# =============================================================================

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s [%(levelname)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

# =============================================================================
# Reconcile Rounds
# =============================================================================


def _run_pass(reconciler: Reconciler, key: ResourceKey, timeout: float) -> ReconcileResult:
    return reconciler.reconcile(key, CancelToken.with_timeout(timeout))


def reconcile_all(
    reconciler: Reconciler,
    store: ResourceStore,
    *,
    workers: int = 1,
    timeout: float = 60.0,
) -> List[ReconcileResult]:
    """Run one pass for every resource key, up to `workers` at a time.

    Each key is submitted once, so passes for the same key never overlap.
    """
    keys = store.list_keys()
    if not keys:
        return []

    results: List[ReconcileResult] = []
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {pool.submit(_run_pass, reconciler, key, timeout): key for key in keys}
        for future in as_completed(futures):
            key = futures[future]
            try:
                results.append(future.result())
            except Exception as e:
                logger.error(f"{key}: unexpected error during reconcile: {e}", exc_info=True)
                results.append(ReconcileResult(key, Outcome.RETRYABLE_ERROR, e))

    return sorted(results, key=lambda r: str(r.key))


def sync_round(reconciler: Reconciler, store: ResourceStore) -> List[ReconcileResult]:
    """One polling round. Exits the process on fatal outcomes."""
    try:
        results = reconcile_all(
            reconciler, store, workers=RECONCILE_WORKERS, timeout=PASS_TIMEOUT_SECONDS
        )
    except RouteDNSError as e:
        logger.warning(f"Unable to list HTTPRoutes: {e}")
        return []

    failed = [r for r in results if not r.ok]
    if failed:
        logger.warning(
            f"Reconciled {len(results)} HTTPRoute(s), {len(failed)} failed: "
            f"{', '.join(str(r.key) for r in failed)}"
        )
    else:
        logger.info(f"Reconciled {len(results)} HTTPRoute(s)")

    fatal = [r for r in results if r.outcome is Outcome.FATAL_ERROR]
    if fatal:
        logger.error(f"Fatal reconcile error for {fatal[0].key}: {fatal[0].error}")
        sys.exit(1)
    return results


# =============================================================================
# Main
# =============================================================================


def main():
    """Main entry point."""
    logger.info(f"route-dns: HTTPRoute -> DNS (sync mode: {SYNC_MODE})")

    if SYNC_MODE not in ("once", "watch"):
        logger.error(f"Invalid SYNC_MODE: {SYNC_MODE}. Use 'once' or 'watch'")
        sys.exit(1)

    try:
        domain_map = load_domain_map(DOMAIN_MAP_PATH)
        logger.info(f"Loaded domain map from {DOMAIN_MAP_PATH}: {', '.join(domain_map.patterns())}")

        provider_config = load_provider_config(DNS_PROVIDER_PATH)
        logger.info(
            f"Loaded provider config from {DNS_PROVIDER_PATH}: {provider_config.provider} "
            f"(upsert: {provider_config.upsert})"
        )

        provider = default_registry().create(provider_config.provider, provider_config.settings)
        load_kube_config()
    except (ConfigError, UnsupportedProviderError) as e:
        logger.error(f"Configuration failed: {e}")
        sys.exit(1)

    if not provider.test_connection():
        logger.error(f"Cannot connect to {provider.name}. Exiting.")
        sys.exit(1)

    store = HTTPRouteStore(namespace=WATCH_NAMESPACE)
    reconciler = Reconciler(
        store=store,
        provider=provider,
        domain_map=domain_map,
        upsert=provider_config.upsert,
        conflict_retries=CONFLICT_RETRIES,
    )
    logger.info(f"Namespace: {WATCH_NAMESPACE or 'all'}, workers: {RECONCILE_WORKERS}")

    try:
        if SYNC_MODE == "once":
            results = sync_round(reconciler, store)
            if any(not r.ok for r in results):
                sys.exit(1)
            return

        logger.info(f"Poll interval: {POLL_INTERVAL_SECONDS}s")
        while True:
            sync_round(reconciler, store)
            time.sleep(max(5, POLL_INTERVAL_SECONDS))

    except KeyboardInterrupt:
        logger.info("Shutting down gracefully...")


if __name__ == "__main__":
    main()
