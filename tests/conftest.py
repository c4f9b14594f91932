"""Shared pytest fixtures for serving operator tests."""

import copy
import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from common import ConflictError, NotFoundError, ResourceKey
from manifest import Manifest
from serving import API_VERSION, KIND


class FakeClient:
    """In-memory ResourceClient.

    Objects are keyed by ResourceKey. Writes bump metadata.resourceVersion
    and reject stale versions with ConflictError, like the API server.
    Failures can be injected per (action, key).

    Attributes:
        objects: Stored objects by identity
        calls: (action, key) for every call, in order
        failures: Exception to raise for (action, key), until removed
        status_conflicts: Remaining ConflictErrors to raise from update_status, by key
    """

    def __init__(self):
        self.objects: dict[ResourceKey, dict] = {}
        self.calls: list[tuple[str, ResourceKey]] = []
        self.failures: dict[tuple[str, ResourceKey], Exception] = {}
        self.status_conflicts: dict[ResourceKey, int] = {}
        self._version = 0
        self._uid = 0

    # Test helpers

    def add(self, obj: dict) -> dict:
        """Seed an object, assigning uid and resourceVersion."""
        stored = copy.deepcopy(obj)
        metadata = stored.setdefault('metadata', {})
        if not metadata.get('uid'):
            self._uid += 1
            metadata['uid'] = f'uid-{self._uid}'
        self._bump(stored)
        self.objects[ResourceKey.of(stored)] = stored
        return copy.deepcopy(stored)

    def fail(self, action: str, key: ResourceKey, error: Exception) -> None:
        self.failures[(action, key)] = error

    def set_available(self, namespace: str, name: str, available: bool = True) -> None:
        """Set the Available condition on a stored Deployment."""
        key = ResourceKey('apps/v1', 'Deployment', namespace, name)
        self.objects[key]['status'] = {
            'conditions': [{'type': 'Available', 'status': 'True' if available else 'False'}],
        }

    def serving(self, namespace: str, name: str) -> dict:
        return self.objects[ResourceKey(API_VERSION, KIND, namespace, name)]

    def calls_for(self, action: str) -> list[ResourceKey]:
        return [key for a, key in self.calls if a == action]

    # ResourceClient

    def get(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        key = ResourceKey(api_version, kind, namespace, name)
        self._enter('get', key)
        return copy.deepcopy(self._stored(key))

    def create(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        self._enter('create', key)
        if key in self.objects:
            raise ConflictError(f"{key} already exists")
        return self.add(obj)

    def update(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        self._enter('update', key)
        stored = self._stored(key)
        self._check_version(key, obj, stored)
        updated = copy.deepcopy(obj)
        updated.pop('status', None)
        if 'status' in stored:
            updated['status'] = stored['status']
        self._bump(updated)
        self.objects[key] = updated
        return copy.deepcopy(updated)

    def update_status(self, obj: dict) -> dict:
        key = ResourceKey.of(obj)
        self._enter('update_status', key)
        if self.status_conflicts.get(key):
            self.status_conflicts[key] -= 1
            self._bump(self.objects[key])
            raise ConflictError(f"{key} was modified")
        stored = self._stored(key)
        self._check_version(key, obj, stored)
        stored['status'] = copy.deepcopy(obj.get('status') or {})
        self._bump(stored)
        return copy.deepcopy(stored)

    def delete(self, api_version: str, kind: str, namespace: str, name: str) -> None:
        key = ResourceKey(api_version, kind, namespace, name)
        self._enter('delete', key)
        self._stored(key)
        del self.objects[key]

    # Internals

    def _enter(self, action: str, key: ResourceKey) -> None:
        self.calls.append((action, key))
        error = self.failures.get((action, key))
        if error is not None:
            raise error

    def _stored(self, key: ResourceKey) -> dict:
        if key not in self.objects:
            raise NotFoundError(f"{key} not found")
        return self.objects[key]

    def _check_version(self, key: ResourceKey, obj: dict, stored: dict) -> None:
        sent = (obj.get('metadata') or {}).get('resourceVersion')
        if sent and sent != stored['metadata']['resourceVersion']:
            raise ConflictError(f"{key}: stale resourceVersion {sent}")

    def _bump(self, obj: dict) -> None:
        self._version += 1
        obj.setdefault('metadata', {})['resourceVersion'] = str(self._version)


def config_map(name: str, data: dict = None, namespace: str = 'knative-serving') -> dict:
    return {
        'apiVersion': 'v1',
        'kind': 'ConfigMap',
        'metadata': {'name': name, 'namespace': namespace},
        'data': dict(data or {}),
    }


def deployment(name: str, containers: list = None, namespace: str = 'knative-serving') -> dict:
    return {
        'apiVersion': 'apps/v1',
        'kind': 'Deployment',
        'metadata': {'name': name, 'namespace': namespace},
        'spec': {
            'replicas': 1,
            'template': {
                'spec': {
                    'containers': [
                        {'name': c, 'image': f'gcr.io/knative-releases/{c}:v0.8.0'}
                        for c in (containers or [name])
                    ],
                },
            },
        },
    }


def knative_serving(namespace: str = 'x', name: str = 'serving', spec: dict = None) -> dict:
    return {
        'apiVersion': API_VERSION,
        'kind': KIND,
        'metadata': {'name': name, 'namespace': namespace},
        'spec': dict(spec or {}),
    }


@pytest.fixture
def client():
    """Empty in-memory cluster."""
    return FakeClient()


@pytest.fixture
def serving_manifest():
    """One ConfigMap and two Deployments, in apply order."""
    return Manifest([
        config_map('config-autoscaler', {'stable-window': '60s'}),
        deployment('activator'),
        deployment('controller'),
    ])


@pytest.fixture
def manifest_dir(tmp_path):
    """Directory with manifest files, including a nested one.

    Layout:
    - 00-namespace.yaml (Namespace)
    - 10-config.yaml (two ConfigMaps, multi-document)
    - 20-workloads.json (Deployment)
    - README.md (ignored)
    - extra/30-service.yaml (Service, only loaded recursively)
    """
    (tmp_path / '00-namespace.yaml').write_text("""
apiVersion: v1
kind: Namespace
metadata:
  name: knative-serving
""")
    (tmp_path / '10-config.yaml').write_text("""
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-autoscaler
  namespace: knative-serving
data:
  stable-window: 60s
---
# trailing comment document
---
apiVersion: v1
kind: ConfigMap
metadata:
  name: config-network
  namespace: knative-serving
""")
    (tmp_path / '20-workloads.json').write_text(
        '{"apiVersion": "apps/v1", "kind": "Deployment",'
        ' "metadata": {"name": "activator", "namespace": "knative-serving"}}'
    )
    (tmp_path / 'README.md').write_text("# not a manifest\n")
    (tmp_path / 'extra').mkdir()
    (tmp_path / 'extra' / '30-service.yaml').write_text("""
apiVersion: v1
kind: Service
metadata:
  name: activator-service
  namespace: knative-serving
""")
    return tmp_path
