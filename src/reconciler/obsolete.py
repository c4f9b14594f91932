"""Resources left behind by earlier releases.

Each entry names the release that stopped shipping the resource. The list
only grows; entries stay even after every supported install has been
upgraded past them. Deleting an entry that never existed (fresh install)
is a harmless no-op.
"""

import logging
from dataclasses import dataclass

from common import ResourceKey
from kube import ResourceClient
from manifest import Manifest
from serving import KnativeServing

logger = logging.getLogger(__name__)

# Resolved to the KnativeServing namespace at prune time
NAMESPACE_OF_INSTANCE = ''


@dataclass(frozen=True)
class ObsoleteResource:
    """A resource identity slated for removal.

    Attributes:
        api_version: apiVersion of the resource
        kind: Resource kind
        namespace: Fixed namespace, or NAMESPACE_OF_INSTANCE
        name: Resource name
        since: Release that introduced the entry
    """
    api_version: str
    kind: str
    namespace: str
    name: str
    since: str

    def key_for(self, instance: KnativeServing) -> ResourceKey:
        namespace = self.namespace or instance.namespace
        return ResourceKey(self.api_version, self.kind, namespace, self.name)


OBSOLETE_RESOURCES: tuple[ObsoleteResource, ...] = (
    # istio-system ingress gateway shipped until 0.3
    ObsoleteResource('v1', 'Service', 'istio-system', 'knative-ingressgateway', since='0.3'),
    ObsoleteResource('apps/v1', 'Deployment', 'istio-system', 'knative-ingressgateway', since='0.3'),
    ObsoleteResource('autoscaling/v1', 'HorizontalPodAutoscaler', 'istio-system',
                     'knative-ingressgateway', since='0.3'),
    # controller config folded into other config maps in 0.5
    ObsoleteResource('v1', 'ConfigMap', NAMESPACE_OF_INSTANCE, 'config-controller', since='0.5'),
)


def delete_obsolete_resources(
    client: ResourceClient,
    manifest: Manifest,
    instance: KnativeServing,
    entries: tuple[ObsoleteResource, ...] = OBSOLETE_RESOURCES,
) -> int:
    """Delete every obsolete resource by exact identity.

    Missing resources count as already clean.

    Returns:
        Number of resources actually deleted

    Raises:
        ApiError: On any deletion failure other than not-found
    """
    deleted = 0
    for entry in entries:
        key = entry.key_for(instance)
        if manifest.delete(client, key.to_object()):
            logger.info(f"Removed obsolete {key} (from {entry.since})")
            deleted += 1
    return deleted
