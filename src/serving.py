"""KnativeServing desired-state resource.

The custom resource is created by a user; the operator only writes its
status subresource. Absence of the resource means "uninstall".
"""

import copy
from dataclasses import dataclass, field
from typing import Any

from status import ServingStatus

GROUP = 'operator.knative.dev'
API_VERSION = f'{GROUP}/v1alpha1'
KIND = 'KnativeServing'


@dataclass
class KnativeServing:
    """A KnativeServing custom resource instance.

    Attributes:
        namespace: Namespace of the resource (the install target)
        name: Resource name
        spec: Opaque platform configuration (config, registry, ...)
        status: Conditions and installed version
        metadata: Remaining object metadata (uid, resourceVersion, labels, ...)
        api_version: apiVersion as received (may be empty from some clients)
        kind: kind as received (may be empty from some clients)
    """
    namespace: str
    name: str
    spec: dict = field(default_factory=dict)
    status: ServingStatus = field(default_factory=ServingStatus)
    metadata: dict = field(default_factory=dict)
    api_version: str = ''
    kind: str = ''

    @property
    def uid(self) -> str:
        uid: str = self.metadata.get('uid', '')
        return uid

    @property
    def resource_version(self) -> str:
        rv: str = self.metadata.get('resourceVersion', '')
        return rv

    def set_group_version_kind(self) -> None:
        """Stamp the canonical apiVersion/kind (some client layers strip them)."""
        self.api_version = API_VERSION
        self.kind = KIND

    def copy_from(self, other: 'KnativeServing') -> None:
        """Overwrite this object in place with another copy (e.g. the server's)."""
        self.namespace = other.namespace
        self.name = other.name
        self.spec = copy.deepcopy(other.spec)
        self.status = ServingStatus.from_dict(other.status.to_dict())
        self.metadata = copy.deepcopy(other.metadata)
        self.api_version = other.api_version or self.api_version
        self.kind = other.kind or self.kind

    def to_dict(self) -> dict:
        """Convert to an unstructured object."""
        metadata: dict[str, Any] = copy.deepcopy(self.metadata)
        metadata['name'] = self.name
        metadata['namespace'] = self.namespace
        d: dict[str, Any] = {
            'apiVersion': self.api_version or API_VERSION,
            'kind': self.kind or KIND,
            'metadata': metadata,
            'spec': copy.deepcopy(self.spec),
        }
        status = self.status.to_dict()
        if status:
            d['status'] = status
        return d

    @classmethod
    def from_dict(cls, data: dict) -> 'KnativeServing':
        """Create KnativeServing from an unstructured object."""
        metadata = copy.deepcopy(data.get('metadata') or {})
        return cls(
            namespace=metadata.pop('namespace', ''),
            name=metadata.pop('name', ''),
            spec=copy.deepcopy(data.get('spec') or {}),
            status=ServingStatus.from_dict(data.get('status')),
            metadata=metadata,
            api_version=data.get('apiVersion', ''),
            kind=data.get('kind', ''),
        )
