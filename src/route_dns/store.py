"""Owning-resource stores.

The reconciler needs three things from a store: read one resource, write
its finalizers and annotations back with stale-version detection, and list
the keys to visit on each polling round.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import urllib3
from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.config.config_exception import ConfigException

from .errors import ConfigError, ResourceConflictError, ResourceNotFoundError, TransportError
from .models import Resource, ResourceKey

logger = logging.getLogger(__name__)

GATEWAY_GROUP = "gateway.networking.k8s.io"
GATEWAY_VERSION = "v1"
HTTPROUTE_PLURAL = "httproutes"


class ResourceStore(ABC):
    """Abstract base class for owning-resource stores."""

    @abstractmethod
    def get(self, key: ResourceKey) -> Resource:
        """Return the current resource. Raises ResourceNotFoundError."""
        pass

    @abstractmethod
    def update(self, resource: Resource) -> None:
        """Persist finalizers and annotations.

        Raises:
            ResourceConflictError: The resource changed since it was read.
            ResourceNotFoundError: The resource no longer exists.
        """
        pass

    @abstractmethod
    def list_keys(self) -> List[ResourceKey]:
        """Return every resource key to reconcile."""
        pass


def load_kube_config() -> None:
    """Load in-cluster credentials, falling back to the local kubeconfig."""
    try:
        config.load_incluster_config()
        logger.info("Using in-cluster Kubernetes configuration")
        return
    except ConfigException:
        pass
    try:
        config.load_kube_config()
        logger.info("Using local kubeconfig")
    except (ConfigException, OSError) as e:
        raise ConfigError(f"Unable to load Kubernetes configuration: {e}") from e


class HTTPRouteStore(ResourceStore):
    """Gateway API HTTPRoute objects as owning resources."""

    def __init__(self, api: Optional[client.CustomObjectsApi] = None, namespace: str = ""):
        self._api = api or client.CustomObjectsApi()
        self._namespace = namespace

    def _translate(self, e: Exception, operation: str, key: Any) -> Exception:
        if isinstance(e, ApiException):
            if e.status == 404:
                return ResourceNotFoundError(key)
            if e.status == 409:
                return ResourceConflictError(key)
            return TransportError(operation, str(key), f"API returned status {e.status}: {e.reason}")
        return TransportError(operation, str(key), str(e))

    def _to_resource(self, obj: Dict[str, Any]) -> Resource:
        metadata = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        return Resource(
            key=ResourceKey(metadata.get("namespace", ""), metadata.get("name", "")),
            hostnames=[str(h) for h in spec.get("hostnames") or []],
            finalizers=list(metadata.get("finalizers") or []),
            annotations=dict(metadata.get("annotations") or {}),
            deleting=bool(metadata.get("deletionTimestamp")),
            resource_version=str(metadata.get("resourceVersion") or ""),
            raw=obj,
        )

    def get(self, key: ResourceKey) -> Resource:
        try:
            obj = self._api.get_namespaced_custom_object(
                GATEWAY_GROUP, GATEWAY_VERSION, key.namespace, HTTPROUTE_PLURAL, key.name
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._translate(e, "get", key) from e
        return self._to_resource(obj)

    def update(self, resource: Resource) -> None:
        body = dict(resource.raw or {})
        metadata = dict(body.get("metadata") or {})
        metadata["finalizers"] = list(resource.finalizers)
        metadata["annotations"] = dict(resource.annotations)
        if resource.resource_version:
            metadata["resourceVersion"] = resource.resource_version
        body["metadata"] = metadata

        key = resource.key
        try:
            self._api.replace_namespaced_custom_object(
                GATEWAY_GROUP, GATEWAY_VERSION, key.namespace, HTTPROUTE_PLURAL, key.name, body
            )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._translate(e, "update", key) from e

    def list_keys(self) -> List[ResourceKey]:
        scope = self._namespace or "all namespaces"
        try:
            if self._namespace:
                data = self._api.list_namespaced_custom_object(
                    GATEWAY_GROUP, GATEWAY_VERSION, self._namespace, HTTPROUTE_PLURAL
                )
            else:
                data = self._api.list_cluster_custom_object(
                    GATEWAY_GROUP, GATEWAY_VERSION, HTTPROUTE_PLURAL
                )
        except (ApiException, urllib3.exceptions.HTTPError) as e:
            raise self._translate(e, "list", scope) from e

        keys = []
        for item in data.get("items") or []:
            metadata = item.get("metadata") or {}
            if metadata.get("name"):
                keys.append(ResourceKey(metadata.get("namespace", ""), metadata["name"]))
        return keys
