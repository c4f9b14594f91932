"""Resource access for the serving operator.

ResourceClient is the seam between the reconciler and the cluster. It
works on unstructured dicts and reports failures with the operator's own
error types:
- NotFoundError: object (or its kind) does not exist
- ConflictError: stale resourceVersion on write
- ApiError: anything else the API server rejects, or a connection failure

KubernetesClient implements it on top of kubernetes.dynamic.DynamicClient.
"""

import logging
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import urllib3
from kubernetes import client as k8s_client
from kubernetes import config as k8s_config
from kubernetes.client.exceptions import ApiException
from kubernetes.config.config_exception import ConfigException
from kubernetes.dynamic import DynamicClient
from kubernetes.dynamic.exceptions import DynamicApiError, ResourceNotFoundError

from common import ApiError, ConflictError, NotFoundError, ResourceKey
from config import ConfigError

logger = logging.getLogger(__name__)


@runtime_checkable
class ResourceClient(Protocol):
    """Protocol for reading and writing cluster objects."""

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        """Fetch a live object."""

    def create(self, obj: dict) -> dict:
        """Create an object and return the server copy."""

    def update(self, obj: dict) -> dict:
        """Replace an object (resourceVersion checked) and return the server copy."""

    def update_status(self, obj: dict) -> dict:
        """Replace the status subresource and return the server copy."""

    def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        """Delete an object."""


def _translate(key: ResourceKey, action: str, fn: Callable[[], Any]) -> Any:
    """Run an API call, mapping client exceptions to operator errors."""
    try:
        return fn()
    except ResourceNotFoundError as e:
        # The kind itself is not served by the cluster
        raise NotFoundError(f"{action} {key}: kind not served: {e}") from e
    except DynamicApiError as e:
        if e.status == 404:
            raise NotFoundError(f"{action} {key}: not found") from e
        if e.status == 409:
            raise ConflictError(f"{action} {key}: {e.summary()}") from e
        raise ApiError(f"{action} {key}: {e.summary()}", status=e.status) from e
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(f"{action} {key}: not found") from e
        if e.status == 409:
            raise ConflictError(f"{action} {key}: {e.reason}") from e
        raise ApiError(f"{action} {key}: {e.status} {e.reason}", status=e.status) from e
    except urllib3.exceptions.HTTPError as e:
        # Connection refused, timeouts, dropped streams
        raise ApiError(f"{action} {key}: {e}") from e


class KubernetesClient:
    """ResourceClient backed by the kubernetes dynamic client."""

    def __init__(self, dynamic_client: DynamicClient):
        self._client = dynamic_client

    @classmethod
    def connect(cls, kubeconfig: Optional[str] = None,
                context: Optional[str] = None) -> 'KubernetesClient':
        """Build a client from in-cluster config, falling back to kubeconfig.

        An explicit kubeconfig or context skips the in-cluster attempt.

        Raises:
            ConfigError: If no usable configuration is found
        """
        if kubeconfig is None and context is None:
            try:
                k8s_config.load_incluster_config()
                logger.info("Loaded in-cluster Kubernetes config")
                return cls(DynamicClient(k8s_client.ApiClient()))
            except ConfigException:
                logger.debug("Not running in-cluster, trying kubeconfig")
        try:
            k8s_config.load_kube_config(config_file=kubeconfig, context=context)
        except ConfigException as e:
            raise ConfigError(f"Cannot load Kubernetes config: {e}") from e
        logger.info("Loaded kubeconfig%s", f" (context {context})" if context else '')
        return cls(DynamicClient(k8s_client.ApiClient()))

    def _resource(self, key: ResourceKey, action: str):
        return _translate(
            key, action,
            lambda: self._client.resources.get(api_version=key.api_version, kind=key.kind),
        )

    @staticmethod
    def _namespace(key: ResourceKey) -> Optional[str]:
        if key.is_cluster_scoped:
            return None
        return key.namespace or None

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        key = ResourceKey(api_version, kind, namespace, name)
        resource = self._resource(key, 'get')
        result = _translate(
            key, 'get',
            lambda: resource.get(name=name, namespace=self._namespace(key)),
        )
        obj: dict = result.to_dict()
        return obj

    def create(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        resource = self._resource(key, 'create')
        result = _translate(
            key, 'create',
            lambda: resource.create(body=obj, namespace=self._namespace(key)),
        )
        created: dict = result.to_dict()
        return created

    def update(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        resource = self._resource(key, 'update')
        result = _translate(
            key, 'update',
            lambda: resource.replace(body=obj, namespace=self._namespace(key)),
        )
        updated: dict = result.to_dict()
        return updated

    def update_status(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        resource = self._resource(key, 'update status')
        result = _translate(
            key, 'update status',
            lambda: resource.status.replace(body=obj, namespace=self._namespace(key)),
        )
        updated: dict = result.to_dict()
        return updated

    def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        key = ResourceKey(api_version, kind, namespace, name)
        resource = self._resource(key, 'delete')
        _translate(
            key, 'delete',
            lambda: resource.delete(name=name, namespace=self._namespace(key)),
        )
