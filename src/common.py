"""Common utilities and types for the serving operator."""

import copy
from dataclasses import dataclass
from typing import Any, Optional

_MISSING = object()

# Kinds that never carry metadata.namespace
CLUSTER_SCOPED_KINDS = frozenset({
    'APIService',
    'ClusterRole',
    'ClusterRoleBinding',
    'CustomResourceDefinition',
    'MutatingWebhookConfiguration',
    'Namespace',
    'PersistentVolume',
    'PriorityClass',
    'StorageClass',
    'ValidatingWebhookConfiguration',
})


class OperatorError(Exception):
    """Base class for errors that abort a reconciliation and request a retry."""


class ApiError(OperatorError):
    """Error returned by the resource-access layer."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class NotFoundError(ApiError):
    """The addressed resource (or its kind) does not exist."""

    def __init__(self, message: str):
        super().__init__(message, status=404)


class ConflictError(ApiError):
    """A write was rejected because it was based on a stale resourceVersion."""

    def __init__(self, message: str):
        super().__init__(message, status=409)


class TransformError(OperatorError):
    """A manifest transformer failed."""


@dataclass(frozen=True)
class ResourceKey:
    """Identity of a resource: (apiVersion, kind, namespace, name)."""
    api_version: str
    kind: str
    namespace: str
    name: str

    @classmethod
    def of(cls, obj: dict) -> 'ResourceKey':
        """Read the identity of an unstructured object."""
        metadata = obj.get('metadata') or {}
        return cls(
            api_version=obj.get('apiVersion', ''),
            kind=obj.get('kind', ''),
            namespace=metadata.get('namespace') or '',
            name=metadata.get('name', ''),
        )

    @property
    def is_cluster_scoped(self) -> bool:
        return is_cluster_scoped(self.kind)

    def to_object(self) -> dict:
        """Build a minimal unstructured object carrying only this identity."""
        metadata: dict[str, Any] = {'name': self.name}
        if self.namespace:
            metadata['namespace'] = self.namespace
        return {'apiVersion': self.api_version, 'kind': self.kind, 'metadata': metadata}

    def __str__(self) -> str:
        if self.namespace:
            return f"{self.kind}/{self.namespace}/{self.name} ({self.api_version})"
        return f"{self.kind}/{self.name} ({self.api_version})"


def is_cluster_scoped(kind: str) -> bool:
    """True if objects of this kind live outside any namespace."""
    return kind in CLUSTER_SCOPED_KINDS


def get_metadata(obj: dict) -> dict:
    """Return obj['metadata'], creating it when missing."""
    metadata = obj.get('metadata')
    if metadata is None:
        metadata = {}
        obj['metadata'] = metadata
    return metadata


def set_nested(obj: dict, value: Any, *path: str) -> None:
    """Set obj[path[0]][path[1]]... = value, creating intermediate dicts."""
    current = obj
    for key in path[:-1]:
        nxt = current.get(key)
        if not isinstance(nxt, dict):
            nxt = {}
            current[key] = nxt
        current = nxt
    current[path[-1]] = value


def get_nested(obj: dict, *path: str, default: Any = None) -> Any:
    """Return obj[path[0]][path[1]]..., or default when any step is missing."""
    current: Any = obj
    for key in path:
        if not isinstance(current, dict) or key not in current:
            return default
        current = current[key]
    return current


def update_changed(desired: dict, live: dict) -> bool:
    """Merge desired fields onto a live object in place.

    Nested mappings are merged key by key; any other value (lists included)
    replaces the live value when it differs. Fields only the server sets
    (status, resourceVersion, uid, ...) are left alone because desired
    objects never carry them. Under metadata only labels, annotations and
    ownerReferences are reconciled.

    Returns:
        True if the live object was modified
    """
    changed = False
    for key, value in desired.items():
        if key == 'metadata':
            if _update_metadata(value or {}, get_metadata(live)):
                changed = True
            continue
        if key == 'status':
            continue
        if _merge_value(key, value, live):
            changed = True
    return changed


def _update_metadata(desired: dict, live: dict) -> bool:
    changed = False
    for key in ('labels', 'annotations'):
        if key in desired and _merge_value(key, desired[key] or {}, live):
            changed = True
    if 'ownerReferences' in desired:
        refs = desired['ownerReferences'] or []
        if live.get('ownerReferences') != refs:
            live['ownerReferences'] = copy.deepcopy(refs)
            changed = True
    return changed


def _merge_value(key: str, value: Any, target: dict) -> bool:
    if isinstance(value, dict):
        current = target.get(key)
        if not isinstance(current, dict):
            target[key] = copy.deepcopy(value)
            return True
        changed = False
        for sub_key, sub_value in value.items():
            if _merge_value(sub_key, sub_value, current):
                changed = True
        return changed
    if target.get(key, _MISSING) != value:
        target[key] = copy.deepcopy(value)
        return True
    return False
