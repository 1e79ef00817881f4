import logging

import kopf

from crdctl.cluster.client import CRDClient, load_kube_config
from crdctl.config import Settings, configure_logging
from crdctl.crd.base import Operation
from crdctl.crd.reconciler import process_crds
from crdctl.errors import CRDCtlError
from crdctl.wait.poller import CancelContext

logger = logging.getLogger(__name__)

# Cancels any Established wait still running when the operator stops
operator_cancel = CancelContext()


def _process(settings, operation):
    return process_crds(
        settings.crds_paths,
        operation,
        client=CRDClient(),
        strict=settings.strict,
        policy=settings.error_policy,
        max_workers=settings.workers,
        establish_timeout=settings.wait_timeout if operation is Operation.APPLY else None,
        poll_interval=settings.poll_interval,
        cancel=operator_cancel,
        logger=logger,
    )


@kopf.on.startup()
def startup_fn(settings: kopf.OperatorSettings, **kwargs):
    """Load cluster config and apply CRDs before handlers start."""
    config = Settings.from_env()
    logger.info("crdctl operator is starting up...")

    # Only startup/cleanup hooks are registered, there is nothing to peer on
    settings.peering.standalone = True
    load_kube_config(config.kube_context)

    if not config.manage_crds:
        logger.info("MANAGE_CRDS is disabled, leaving CRDs untouched")
        return
    if not config.crds_paths:
        logger.warning("CRDS_PATH is empty, no CRDs to apply")
        return

    try:
        result = _process(config, Operation.APPLY)
    except CRDCtlError as e:
        logger.error(f"Failed to apply CRDs to cluster: {e}")
        raise kopf.PermanentError(f"Failed to apply CRDs: {e}") from e

    logger.info(f"CRDs applied to cluster: {result.summary()}")


@kopf.on.cleanup()
def cleanup_fn(**kwargs):
    """Delete managed CRDs on shutdown when asked to."""
    logger.info("crdctl operator is shutting down...")
    operator_cancel.cancel()

    config = Settings.from_env()
    if not (config.manage_crds and config.delete_on_shutdown and config.crds_paths):
        logger.info("crdctl operator shutdown complete")
        return

    try:
        result = _process(config, Operation.DELETE)
        logger.info(f"CRDs removed from cluster: {result.summary()}")
    except CRDCtlError as e:
        logger.error(f"Failed to delete CRDs on shutdown: {e}")
        raise

    logger.info("crdctl operator shutdown complete")


def main():
    configure_logging(Settings.from_env())
    try:
        kopf.run(clusterwide=True)
    except KeyboardInterrupt:
        logger.info("Operator stopped by user")
    except Exception as e:
        logger.error(f"Operator failed: {e}")
        raise


if __name__ == "__main__":
    main()
