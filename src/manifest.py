"""Manifest loading, transformation and application.

A manifest is the ordered collection of resource templates that make up a
Knative Serving installation (namespace, RBAC, CRDs, config maps,
deployments, services, ...). Order matters: a namespace must exist before
the objects inside it, a CRD before its custom resources.

Templates are loaded once at startup. Each reconciliation works on its own
copy, rewrites it with transformers, then applies it resource by resource.
"""

import copy
import json
import logging
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

import yaml

from common import NotFoundError, ResourceKey, TransformError, update_changed
from config import ConfigError
from kube import ResourceClient

logger = logging.getLogger(__name__)

# A transformer rewrites one unstructured object in place
Transformer = Callable[[dict], None]

MANIFEST_SUFFIXES = {'.yaml', '.yml', '.json'}


class Manifest:
    """Ordered collection of unstructured resource templates.

    Attributes:
        resources: Resource dicts in apply order
        source_path: Path the templates were loaded from (for debugging)
    """

    def __init__(self, resources: Iterable[dict], source_path: Optional[Path] = None):
        self.resources: list[dict] = list(resources)
        self.source_path = source_path

    def __len__(self) -> int:
        return len(self.resources)

    def __iter__(self) -> Iterator[dict]:
        return iter(self.resources)

    def __repr__(self) -> str:
        return f"Manifest({len(self.resources)} resources, source={self.source_path})"

    def keys(self) -> list[ResourceKey]:
        """Identities of all resources, in order."""
        return [ResourceKey.of(r) for r in self.resources]

    def filter_kind(self, kind: str) -> list[dict]:
        """Resources of the given kind, in order."""
        return [r for r in self.resources if r.get('kind') == kind]

    def copy(self) -> 'Manifest':
        """Deep copy, safe to transform without touching this manifest."""
        return Manifest(copy.deepcopy(self.resources), source_path=self.source_path)

    def transform(self, *transformers: Transformer) -> 'Manifest':
        """Rewrite every resource with the given transformers, in order.

        Each resource is transformed on a copy; the collection is replaced
        only if every transformer succeeded on every resource. Resource
        order is never changed.

        Returns:
            self, for chaining

        Raises:
            TransformError: If a transformer raises
        """
        result = []
        for resource in self.resources:
            candidate = copy.deepcopy(resource)
            for fn in transformers:
                try:
                    fn(candidate)
                except TransformError:
                    raise
                except (AttributeError, KeyError, TypeError, ValueError) as e:
                    raise TransformError(
                        f"Transform {getattr(fn, '__name__', fn)!r} failed on "
                        f"{ResourceKey.of(resource)}: {e}"
                    ) from e
            result.append(candidate)
        self.resources = result
        return self

    def apply(self, client: ResourceClient, spec: dict) -> bool:
        """Create or update one resource.

        Compares against the live object and writes only when a field
        declared in spec differs.

        Returns:
            True if the live system was changed
        """
        key = ResourceKey.of(spec)
        try:
            current = client.get(key.api_version, key.kind, key.namespace, key.name)
        except NotFoundError:
            logger.info(f"Creating {key}")
            client.create(copy.deepcopy(spec))
            return True

        if not update_changed(spec, current):
            logger.debug(f"Unchanged {key}")
            return False

        logger.info(f"Updating {key}")
        client.update(current)
        return True

    def apply_all(self, client: ResourceClient) -> int:
        """Apply every resource in order, stopping at the first failure.

        Returns:
            Number of resources created or updated
        """
        changed = 0
        for spec in self.resources:
            if self.apply(client, spec):
                changed += 1
        logger.debug(f"Applied {len(self.resources)} resources ({changed} changed)")
        return changed

    def delete(self, client: ResourceClient, spec: dict) -> bool:
        """Delete one resource by identity. A missing resource is not an error.

        Returns:
            True if something was deleted
        """
        key = ResourceKey.of(spec)
        try:
            client.delete(key.api_version, key.kind, key.namespace, key.name)
        except NotFoundError:
            logger.debug(f"Already absent: {key}")
            return False
        logger.info(f"Deleted {key}")
        return True

    def delete_all(self, client: ResourceClient) -> int:
        """Delete every resource in reverse order, stopping at the first failure.

        Returns:
            Number of resources actually deleted
        """
        deleted = 0
        for spec in reversed(self.resources):
            if self.delete(client, spec):
                deleted += 1
        return deleted


class ManifestLoader:
    """Loads resource templates from a file or directory.

    Directories are read in sorted filename order. Subdirectories are
    descended only when recursive is set. YAML files may hold several
    documents; `kind: List` documents are flattened into their items.
    """

    def __init__(self, path: Path, recursive: bool = False):
        self.path = Path(path)
        self.recursive = recursive

    def files(self) -> list[Path]:
        """List manifest files in load order.

        Raises:
            ConfigError: If the path does not exist
        """
        if not self.path.exists():
            raise ConfigError(f"Manifest path not found: {self.path}")
        if self.path.is_file():
            return [self.path]

        pattern = '**/*' if self.recursive else '*'
        return sorted(
            p for p in self.path.glob(pattern)
            if p.is_file() and p.suffix in MANIFEST_SUFFIXES
        )

    def load(self) -> Manifest:
        """Load all templates into a Manifest.

        Raises:
            ConfigError: If a file cannot be parsed or holds a non-object
        """
        resources: list[dict] = []
        for path in self.files():
            resources.extend(self.load_file(path))
        manifest = Manifest(resources, source_path=self.path)
        seen: set[ResourceKey] = set()
        for key in manifest.keys():
            if key in seen:
                # Later copy wins on apply
                logger.warning(f"Duplicate resource {key} in {self.path}")
            seen.add(key)
        logger.info(f"Loaded {len(resources)} resources from {self.path}")
        return manifest

    def load_file(self, path: Path) -> list[dict]:
        """Parse one file into resource dicts."""
        try:
            with open(path, encoding='utf-8') as f:
                if path.suffix == '.json':
                    documents = [json.load(f)]
                else:
                    documents = list(yaml.safe_load_all(f))
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Invalid manifest {path}: {e}") from e

        resources = []
        for i, doc in enumerate(documents):
            if doc is None:
                continue
            if not isinstance(doc, dict):
                raise ConfigError(f"Document {i} in {path} must be an object (dict)")
            if doc.get('kind') == 'List' or (
                    doc.get('kind', '').endswith('List') and 'items' in doc):
                resources.extend(_validated(item, path) for item in doc.get('items') or [])
            else:
                resources.append(_validated(doc, path))
        return resources


def _validated(doc: dict, path: Path) -> dict:
    for required in ('apiVersion', 'kind'):
        if not doc.get(required):
            raise ConfigError(f"Resource in {path} missing required field: {required}")
    if not (doc.get('metadata') or {}).get('name'):
        raise ConfigError(f"{doc['kind']} in {path} missing required field: metadata.name")
    return doc


def load_manifest(path: Path, recursive: bool = False) -> Manifest:
    """Load a manifest from a file or directory.

    Args:
        path: Template file or directory
        recursive: Descend into subdirectories

    Returns:
        Manifest instance

    Raises:
        ConfigError: If the path is missing or a template is invalid
    """
    return ManifestLoader(path, recursive=recursive).load()
