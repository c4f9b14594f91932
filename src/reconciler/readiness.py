"""Deployment readiness checks.

A Knative Serving install is healthy when every Deployment in the manifest
reports an Available condition with status True.
"""

import logging

from common import NotFoundError, ResourceKey, get_nested
from kube import ResourceClient
from manifest import Manifest

logger = logging.getLogger(__name__)

WORKLOAD_KIND = 'Deployment'


def deployment_available(deployment: dict) -> bool:
    """True if the live deployment has condition Available=True."""
    for condition in get_nested(deployment, 'status', 'conditions', default=None) or []:
        if condition.get('type') == 'Available' and condition.get('status') == 'True':
            return True
    return False


def deployments_ready(client: ResourceClient, manifest: Manifest) -> tuple[bool, str]:
    """Check every Deployment in the manifest, in manifest order.

    Stops at the first deployment that is missing or unavailable. A missing
    deployment is reported as not ready rather than as an error, since it
    may simply not be visible yet right after an apply.

    Args:
        client: Resource client
        manifest: Transformed manifest (namespaces already injected)

    Returns:
        (ready, message) tuple

    Raises:
        ApiError: If a fetch fails for any reason other than not-found
    """
    deployments = manifest.filter_kind(WORKLOAD_KIND)
    for spec in deployments:
        key = ResourceKey.of(spec)
        try:
            live = client.get(key.api_version, key.kind, key.namespace, key.name)
        except NotFoundError:
            return False, f"Deployment {key.namespace}/{key.name} not found"
        if not deployment_available(live):
            return False, f"Deployment {key.namespace}/{key.name} not available"
    return True, f"{len(deployments)} deployments available"
