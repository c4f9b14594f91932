"""Manifest transformers driven by the KnativeServing resource.

Every transformer takes one unstructured object and rewrites it in place.
Objects a transformer does not target pass through untouched.

Platforms.transformers() builds the ordered list used on each install:
    inject_owner → inject_namespace → platform extensions
        → config_map_transform → image_transform
"""

import logging
from typing import Callable, Optional

from common import (
    TransformError,
    get_metadata,
    get_nested,
    is_cluster_scoped,
    set_nested,
)
from kube import ResourceClient
from manifest import Transformer
from serving import KnativeServing

logger = logging.getLogger(__name__)

# Placeholder in registry.default replaced with the container name
IMAGE_NAME_PLACEHOLDER = '${NAME}'

# ConfigMaps holding Knative Serving settings are named config-<key>
CONFIG_MAP_PREFIX = 'config-'

# Kinds whose pod templates carry images
POD_TEMPLATE_KINDS = {'Deployment', 'DaemonSet', 'StatefulSet', 'Job'}

# Knative caching resource pre-pulling an image (spec.image)
IMAGE_KIND = 'Image'

# A platform extension inspects the cluster/instance and may contribute a transformer
PlatformExtension = Callable[[ResourceClient, KnativeServing], Optional[Transformer]]


def inject_namespace(namespace: str) -> Transformer:
    """Move every namespaced object into namespace.

    Namespace objects are renamed to it; ServiceAccount subjects of role
    bindings and webhook service references follow it as well.
    """
    if not namespace:
        raise TransformError("inject_namespace requires a namespace")

    def transform(obj: dict) -> None:
        kind = obj.get('kind', '')
        metadata = get_metadata(obj)
        if kind == 'Namespace':
            metadata['name'] = namespace
            return
        if kind in ('ClusterRoleBinding', 'RoleBinding'):
            for subject in obj.get('subjects') or []:
                if subject.get('kind') == 'ServiceAccount':
                    subject['namespace'] = namespace
        if kind in ('MutatingWebhookConfiguration', 'ValidatingWebhookConfiguration'):
            for webhook in obj.get('webhooks') or []:
                service = get_nested(webhook, 'clientConfig', 'service')
                if isinstance(service, dict):
                    service['namespace'] = namespace
        if kind == 'APIService':
            service = get_nested(obj, 'spec', 'service')
            if isinstance(service, dict):
                service['namespace'] = namespace
        if not is_cluster_scoped(kind):
            metadata['namespace'] = namespace

    transform.__name__ = 'inject_namespace'
    return transform


def inject_owner(instance: KnativeServing) -> Transformer:
    """Add a controller owner reference to every namespaced object."""
    owner = {
        'apiVersion': instance.api_version,
        'kind': instance.kind,
        'name': instance.name,
        'uid': instance.uid,
        'controller': True,
        'blockOwnerDeletion': True,
    }

    def transform(obj: dict) -> None:
        if is_cluster_scoped(obj.get('kind', '')):
            return
        metadata = get_metadata(obj)
        refs = metadata.setdefault('ownerReferences', [])
        if any(ref.get('uid') == owner['uid'] and ref.get('kind') == owner['kind']
               for ref in refs):
            return
        refs.append(dict(owner))

    transform.__name__ = 'inject_owner'
    return transform


def config_map_transform(instance: KnativeServing) -> Transformer:
    """Merge spec.config entries into the matching config-<name> ConfigMaps.

    spec.config: {autoscaler: {stable-window: 60s}} sets
    data['stable-window'] in ConfigMap config-autoscaler.
    """
    overrides = instance.spec.get('config') or {}
    if not isinstance(overrides, dict):
        raise TransformError(f"spec.config must be a mapping, got {type(overrides).__name__}")
    for key, values in overrides.items():
        if values and not isinstance(values, dict):
            raise TransformError(
                f"spec.config.{key} must be a mapping, got {type(values).__name__}")

    def transform(obj: dict) -> None:
        if obj.get('kind') != 'ConfigMap':
            return
        name = get_metadata(obj).get('name', '')
        if not name.startswith(CONFIG_MAP_PREFIX):
            return
        values = overrides.get(name[len(CONFIG_MAP_PREFIX):])
        if not values:
            return
        data = obj.setdefault('data', {})
        for field, value in values.items():
            logger.debug(f"ConfigMap {name}: {field}={value}")
            data[field] = str(value)

    transform.__name__ = 'config_map_transform'
    return transform


def _image_for(registry: dict, container: str, owner: str) -> Optional[str]:
    """Pick the image for a container: override first, then the default template."""
    override = registry.get('override') or {}
    # Deployment-qualified override wins over a bare container name
    for candidate in (f'{owner}/{container}', container):
        if candidate in override:
            image: str = override[candidate]
            return image
    default = registry.get('default') or ''
    if default:
        return default.replace(IMAGE_NAME_PLACEHOLDER, container)
    return None


def image_transform(instance: KnativeServing) -> Transformer:
    """Apply spec.registry to pod templates and caching Images.

    registry.default: image template, ${NAME} is the container name
    registry.override: {container or deployment/container: image}
    registry.imagePullSecrets: [{name: ...}] added to each pod template
    """
    registry = instance.spec.get('registry') or {}
    if not isinstance(registry, dict):
        raise TransformError(f"spec.registry must be a mapping, got {type(registry).__name__}")
    pull_secrets = registry.get('imagePullSecrets') or []

    def transform(obj: dict) -> None:
        kind = obj.get('kind')
        name = get_metadata(obj).get('name', '')
        if kind == IMAGE_KIND:
            image = _image_for(registry, name, name)
            if image:
                set_nested(obj, image, 'spec', 'image')
            return
        if kind not in POD_TEMPLATE_KINDS:
            return

        pod_spec = get_nested(obj, 'spec', 'template', 'spec')
        if not isinstance(pod_spec, dict):
            return
        for field in ('containers', 'initContainers'):
            for container in pod_spec.get(field) or []:
                image = _image_for(registry, container.get('name', ''), name)
                if image:
                    container['image'] = image
        if pull_secrets:
            existing = pod_spec.setdefault('imagePullSecrets', [])
            for secret in pull_secrets:
                if secret not in existing:
                    existing.append(dict(secret))

    transform.__name__ = 'image_transform'
    return transform


class Platforms:
    """Platform-specific manifest rewrites.

    Extensions are registered by the process that builds the reconciler
    (e.g. one for OpenShift). Each is called once per install with the
    client and the resource, and may return a transformer or None.
    """

    def __init__(self, extensions: Optional[list[PlatformExtension]] = None):
        self._extensions: list[PlatformExtension] = list(extensions or [])

    def register(self, extension: PlatformExtension) -> None:
        self._extensions.append(extension)

    def __len__(self) -> int:
        return len(self._extensions)

    def transformers(self, client: ResourceClient, instance: KnativeServing) -> list[Transformer]:
        """Build the ordered transformer list for one install.

        Raises:
            OperatorError: If an extension fails (propagated as is)
        """
        result: list[Transformer] = [
            inject_owner(instance),
            inject_namespace(instance.namespace),
        ]
        for extension in self._extensions:
            transformer = extension(client, instance)
            if transformer is not None:
                result.append(transformer)
        result.append(config_map_transform(instance))
        result.append(image_transform(instance))
        return result
