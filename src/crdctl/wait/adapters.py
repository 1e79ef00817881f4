"""Wait for custom resources to reach a given ``status.state``."""

import logging

from crdctl.cluster.client import CustomResourceClient

from .poller import poll_until

logger = logging.getLogger(__name__)

DEFAULT_POLLING_INTERVAL = 5.0

NVIDIA_DRIVER_GROUP = "nvidia.com"
NVIDIA_DRIVER_VERSION = "v1alpha1"
NVIDIA_DRIVER_PLURAL = "nvidiadrivers"

READY_STATE = "ready"
UPGRADE_DONE_STATE = "upgrade-done"


def status_state(resource):
    """Return ``status.state`` of a resource dict, or None."""
    return ((resource or {}).get("status") or {}).get("state")


def state_equals(target_state):
    def predicate(resource):
        return status_state(resource) == target_state

    return predicate


def wait_for_state(
    client,
    name,
    target_state,
    timeout,
    interval=DEFAULT_POLLING_INTERVAL,
    cancel=None,
    clock=None,
):
    """Poll ``client.get(name)`` until its status.state equals ``target_state``.

    Errors from ``get`` (including not-found) end the wait with
    WaitFailedError.
    """
    return poll_until(
        lambda: client.get(name),
        state_equals(target_state),
        interval,
        timeout,
        cancel=cancel,
        clock=clock,
        description=f"{client.kind_ref} {name} to reach state {target_state!r}",
        logger=logger,
    )


class StatefulResourceClient(CustomResourceClient):
    """CustomResourceClient for kinds that publish ``status.state``."""

    polling_interval = DEFAULT_POLLING_INTERVAL

    def wait_for_state(self, name, target_state, timeout, cancel=None, clock=None):
        return wait_for_state(
            self,
            name,
            target_state,
            timeout,
            interval=self.polling_interval,
            cancel=cancel,
            clock=clock,
        )


class NvidiaDriverClient(StatefulResourceClient):
    """Client for cluster-scoped NVIDIADriver resources."""

    def __init__(self, api=None):
        super().__init__(
            NVIDIA_DRIVER_GROUP,
            NVIDIA_DRIVER_VERSION,
            NVIDIA_DRIVER_PLURAL,
            namespace=None,
            api=api,
        )

    def update_driver_version(self, name, version):
        return self.update_spec_field(name, "version", version)

    def wait_for_ready(self, name, timeout, cancel=None, clock=None):
        return self.wait_for_state(name, READY_STATE, timeout, cancel=cancel, clock=clock)

    def wait_for_upgrade_done(self, name, timeout, cancel=None, clock=None):
        return self.wait_for_state(
            name, UPGRADE_DONE_STATE, timeout, cancel=cancel, clock=clock
        )
