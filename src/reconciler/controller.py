"""Reconciler for KnativeServing resources.

One reconcile() call brings the cluster in line with a single
KnativeServing resource:

    fetch ─┬─ absent ──> delete every manifest resource
           └─ present ─> init_status → install → check_deployments
                         → delete_obsolete_resources

Stages share a ReconcileContext and update the resource status as they
go. The first stage that raises an OperatorError ends the pass; the
caller is told to requeue. The caller guarantees at most one reconcile in
flight per resource; distinct resources may be reconciled concurrently
because every pass works on its own copy of the manifest.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from common import ConflictError, NotFoundError, OperatorError
from config import OperatorConfig
from kube import ResourceClient
from manifest import Manifest
from reconciler.obsolete import delete_obsolete_resources
from reconciler.readiness import deployments_ready
from serving import API_VERSION, KIND, KnativeServing
from status import ServingStatus
from transforms import Platforms, inject_namespace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Request:
    """Identity of the KnativeServing resource to reconcile."""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class ReconcileResult:
    """Outcome of one reconcile pass.

    Attributes:
        requeue: Caller should run the reconcile again
        error: Error that ended the pass early, if any
        ready: Derived readiness of the resource after the pass
        uninstalled: Resource was absent and the manifest was deleted
        status: Resource status as last persisted (None when absent)
    """
    requeue: bool = False
    error: Optional[OperatorError] = None
    ready: bool = False
    uninstalled: bool = False
    status: Optional[ServingStatus] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class ReconcileContext:
    """State shared by the stages of one pass.

    Attributes:
        instance: The KnativeServing resource (status mutated in place)
        manifest: This pass's private copy of the manifest
    """
    instance: KnativeServing
    manifest: Manifest


Stage = Callable[[ReconcileContext], None]


class ServingReconciler:
    """Installs, upgrades and health-checks Knative Serving.

    Attributes:
        client: Resource client for the target cluster
        template: Manifest as loaded at startup, never mutated
        config: Operator settings
        platforms: Platform-specific transformer extensions
    """

    def __init__(
        self,
        client: ResourceClient,
        manifest: Manifest,
        config: Optional[OperatorConfig] = None,
        platforms: Optional[Platforms] = None,
    ):
        self.client = client
        self.template = manifest.copy()
        self.config = config or OperatorConfig()
        self.platforms = platforms or Platforms()
        self.stages: list[Stage] = [
            self.init_status,
            self.install,
            self.check_deployments,
            self.delete_obsolete_resources,
        ]

    def reconcile(self, request: Request) -> ReconcileResult:
        """Run one reconcile pass for the given resource."""
        logger.info(f"Reconciling KnativeServing {request}")

        try:
            instance = self.get_instance(request)
        except NotFoundError:
            return self.uninstall(request)
        except OperatorError as e:
            logger.error(f"Error getting KnativeServing {request}: {e}")
            return ReconcileResult(requeue=True, error=e)

        instance.set_group_version_kind()
        ctx = ReconcileContext(instance=instance, manifest=self.template.copy())

        for stage in self.stages:
            try:
                stage(ctx)
            except OperatorError as e:
                logger.error(f"Stage {stage.__name__} failed for {request}: {e}")
                return ReconcileResult(
                    requeue=True, error=e, ready=instance.status.is_ready(),
                    status=instance.status)

        return ReconcileResult(ready=instance.status.is_ready(), status=instance.status)

    def get_instance(self, request: Request) -> KnativeServing:
        """Fetch the KnativeServing resource.

        Raises:
            NotFoundError: If it does not exist
            ApiError: On any other fetch failure
        """
        obj = self.client.get(API_VERSION, KIND, request.namespace, request.name)
        return KnativeServing.from_dict(obj)

    def uninstall(self, request: Request) -> ReconcileResult:
        """Delete every manifest resource after the KnativeServing went away."""
        logger.debug(f"No KnativeServing {request}, deleting manifest resources")
        manifest = self.template.copy().transform(inject_namespace(request.namespace))
        try:
            deleted = manifest.delete_all(self.client)
        except OperatorError as e:
            logger.error(f"Error deleting resources for {request}: {e}")
            return ReconcileResult(requeue=True, error=e)
        logger.info(f"Uninstalled {request}: {deleted} of {len(manifest)} resources deleted")
        return ReconcileResult(uninstalled=True)

    def update_status(self, instance: KnativeServing) -> None:
        """Write the status subresource and adopt the server's copy.

        On a stale-write conflict the latest object is re-read, the computed
        status carried over, and the write retried.

        Raises:
            ConflictError: If every attempt conflicted
            ApiError: On any other write or re-read failure
        """
        retries = self.config.status_update_retries
        request = Request(instance.namespace, instance.name)
        for attempt in range(1, retries + 1):
            try:
                updated = self.client.update_status(instance.to_dict())
            except ConflictError:
                if attempt == retries:
                    raise
                logger.debug(f"Status conflict for {request} at resourceVersion "
                             f"{instance.resource_version}, retrying ({attempt}/{retries})")
                latest = self.get_instance(request)
                latest.status = instance.status
                instance.copy_from(latest)
                continue
            instance.copy_from(KnativeServing.from_dict(updated))
            return

    # Stages ###############################################################

    def init_status(self, ctx: ReconcileContext) -> None:
        """Initialize conditions once, on a resource that has none."""
        logger.debug(f"init_status: {ctx.instance.status}")
        if ctx.instance.status.conditions:
            return
        ctx.instance.status.initialize_conditions()
        self.update_status(ctx.instance)

    def install(self, ctx: ReconcileContext) -> None:
        """Transform and apply the manifest, then persist status."""
        logger.debug(f"install: {ctx.instance.status}")
        try:
            self.transform(ctx)
            self.apply(ctx)
        except OperatorError:
            self.update_status(ctx.instance)
            raise
        self.update_status(ctx.instance)

    def transform(self, ctx: ReconcileContext) -> None:
        """Rewrite the pass's manifest for this resource and platform."""
        try:
            transformers = self.platforms.transformers(self.client, ctx.instance)
            ctx.manifest.transform(*transformers)
        except OperatorError as e:
            ctx.instance.status.mark_install_failed(str(e))
            raise

    def apply(self, ctx: ReconcileContext) -> None:
        """Apply the manifest in order and record the outcome."""
        try:
            ctx.manifest.apply_all(self.client)
        except OperatorError as e:
            ctx.instance.status.mark_install_failed(str(e))
            raise
        ctx.instance.status.mark_install_succeeded()
        ctx.instance.status.version = self.config.version
        logger.info(f"Install succeeded, version {self.config.version}")

    def check_deployments(self, ctx: ReconcileContext) -> None:
        """Mark DeploymentsAvailable from the live deployments."""
        logger.debug(f"check_deployments: {ctx.instance.status}")
        try:
            ready, message = deployments_ready(self.client, ctx.manifest)
        except OperatorError:
            ctx.instance.status.mark_deployments_not_ready()
            self.update_status(ctx.instance)
            raise

        if ready:
            logger.info("All deployments are available")
            ctx.instance.status.mark_deployments_available()
        else:
            logger.debug(f"Deployments not ready: {message}")
            ctx.instance.status.mark_deployments_not_ready()
        self.update_status(ctx.instance)

    def delete_obsolete_resources(self, ctx: ReconcileContext) -> None:
        """Remove resources earlier releases left behind."""
        deleted = delete_obsolete_resources(self.client, ctx.manifest, ctx.instance)
        if deleted:
            logger.info(f"Deleted {deleted} obsolete resources")
