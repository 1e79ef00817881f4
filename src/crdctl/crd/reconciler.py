"""Apply or delete a set of CRDs against the cluster.

Objects are handled one at a time in input order (or on a thread pool when
``max_workers > 1``; results are still reported in input order). No
dependency graph between CRDs is computed: callers whose custom resources
reference each other must order their manifests accordingly.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from crdctl.cluster.client import CRDClient
from crdctl.config import DEFAULT_POLL_INTERVAL
from crdctl.errors import (
    AggregateReconcileError,
    AlreadyExistsError,
    ConflictError,
    NotFoundError,
    ReconcileError,
)
from crdctl.wait.poller import poll_until

from .base import CRDObject, Operation, is_established, matches_live
from .loader import load_crds

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    NOOP = "noop"
    FAILED = "failed"


class ErrorPolicy(str, Enum):
    """Whether to keep going after a per-object failure."""

    CONTINUE = "continue"
    STOP = "stop"


class ObjectResult(BaseModel):
    """Outcome of reconciling a single CRD."""

    identity: str
    operation: Operation
    outcome: Outcome
    error: Optional[ReconcileError] = None

    class Config:
        arbitrary_types_allowed = True

    @property
    def reason(self):
        return str(self.error.cause) if self.error is not None else None


class ReconcileResult(BaseModel):
    """Per-object outcomes of one run, in input order.

    ``skipped`` lists identities that were never attempted because the run
    stopped on an earlier error.
    """

    operation: Operation
    policy: ErrorPolicy = ErrorPolicy.CONTINUE
    results: List[ObjectResult] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @property
    def counts(self) -> Dict[str, int]:
        counts = {outcome.value: 0 for outcome in Outcome}
        for r in self.results:
            counts[r.outcome.value] += 1
        return counts

    @property
    def errors(self):
        return [r.error for r in self.results if r.outcome is Outcome.FAILED]

    @property
    def first_error(self):
        errors = self.errors
        return errors[0] if errors else None

    @property
    def ok(self):
        return not self.errors and not self.skipped

    def outcome_of(self, identity):
        for r in self.results:
            if r.identity == identity:
                return r.outcome
        return None

    def summary(self):
        parts = [f"{n} {name}" for name, n in self.counts.items() if n]
        if self.skipped:
            parts.append(f"{len(self.skipped)} skipped")
        return ", ".join(parts) or "nothing to do"


class CRDReconciler:
    """Create-or-update or delete CRDs through a cluster client.

    Args:
        client: Object with get/create/update/delete (see CRDClient)
        policy: ErrorPolicy.CONTINUE (best effort) or ErrorPolicy.STOP
        max_workers: Number of objects reconciled in parallel
        establish_timeout: If set, wait this long for applied CRDs to be
            Established
        poll_interval: Interval for the Established wait
        cancel: CancelContext bounding any wait performed
        clock: Time source for waits
        logger: Logger to report on
    """

    def __init__(
        self,
        client,
        policy=ErrorPolicy.CONTINUE,
        max_workers=1,
        establish_timeout=None,
        poll_interval=DEFAULT_POLL_INTERVAL,
        cancel=None,
        clock=None,
        logger=logger,
    ):
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self.client = client
        self.policy = ErrorPolicy(policy)
        self.max_workers = max_workers
        self.establish_timeout = establish_timeout
        self.poll_interval = poll_interval
        self.cancel = cancel
        self.clock = clock
        self.logger = logger

        self._actions = {
            Operation.APPLY: self._apply_one,
            Operation.DELETE: self._delete_one,
        }

    def process(self, objects, operation):
        """Reconcile ``objects`` with ``operation``.

        Returns:
            ReconcileResult: When every object succeeded

        Raises:
            AggregateReconcileError: One or more objects failed; the error
                carries the full ReconcileResult
        """
        operation = Operation(operation)
        objects = list(objects)
        result = ReconcileResult(operation=operation, policy=self.policy)

        self.logger.info(
            f"Processing {len(objects)} CRD(s): {operation.value} "
            f"(policy: {self.policy.value}, workers: {self.max_workers})"
        )

        if self.max_workers > 1 and len(objects) > 1:
            outcomes = self._run_concurrently(objects, operation)
        else:
            outcomes = self._run_sequentially(objects, operation)

        for crd, object_result in zip(objects, outcomes):
            if object_result is None:
                result.skipped.append(crd.identity)
            else:
                result.results.append(object_result)

        self.logger.info(f"{operation.value.capitalize()} finished: {result.summary()}")

        if result.errors:
            raise AggregateReconcileError(result.errors, result)
        return result

    def _run_sequentially(self, objects, operation):
        outcomes = []
        for crd in objects:
            object_result = self._run_one(crd, operation)
            outcomes.append(object_result)
            if object_result.outcome is Outcome.FAILED and self.policy is ErrorPolicy.STOP:
                outcomes.extend([None] * (len(objects) - len(outcomes)))
                break
        return outcomes

    def _run_concurrently(self, objects, operation):
        stop = threading.Event()

        def task(crd):
            if stop.is_set():
                return None
            object_result = self._run_one(crd, operation)
            if object_result.outcome is Outcome.FAILED and self.policy is ErrorPolicy.STOP:
                stop.set()
            return object_result

        with ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="crdctl"
        ) as pool:
            futures = [pool.submit(task, crd) for crd in objects]
            return [f.result() for f in futures]

    def _run_one(self, crd: CRDObject, operation):
        action = self._actions[operation]
        try:
            outcome = action(crd)
        except Exception as e:
            error = ReconcileError(crd.identity, operation.value, e)
            error.__cause__ = e
            self.logger.error(f"Failed to {operation.value} CRD {crd.identity}: {e}")
            return ObjectResult(
                identity=crd.identity,
                operation=operation,
                outcome=Outcome.FAILED,
                error=error,
            )
        return ObjectResult(identity=crd.identity, operation=operation, outcome=outcome)

    def _get_existing(self, name):
        try:
            return self.client.get(name)
        except NotFoundError:
            return None

    def _apply_one(self, crd):
        existing = self._get_existing(crd.name)

        if existing is None:
            try:
                self.client.create(crd.desired_body())
                self.logger.info(f"Created CRD: {crd.name}")
                outcome = Outcome.CREATED
            except AlreadyExistsError:
                self.logger.info(f"CRD {crd.name} was created concurrently, updating")
                outcome = self._update(crd, self.client.get(crd.name))
        else:
            outcome = self._update(crd, existing)

        if self.establish_timeout is not None:
            self._wait_established(crd)
        return outcome

    def _update(self, crd, existing):
        for attempt in (1, 2):
            if matches_live(crd, existing):
                self.logger.info(f"CRD {crd.name} unchanged")
                return Outcome.NOOP

            resource_version = (existing.get("metadata") or {}).get("resourceVersion")
            try:
                self.client.update(crd.desired_body(resource_version=resource_version))
                self.logger.info(f"Updated CRD: {crd.name}")
                return Outcome.UPDATED
            except ConflictError:
                if attempt == 2:
                    raise
                self.logger.warning(
                    f"Conflict updating CRD {crd.name}, retrying with a fresh copy"
                )
                existing = self.client.get(crd.name)

    def _wait_established(self, crd):
        poll_until(
            lambda: self.client.get(crd.name),
            is_established,
            self.poll_interval,
            self.establish_timeout,
            cancel=self.cancel,
            clock=self.clock,
            description=f"CRD {crd.name} to be established",
            logger=self.logger,
        )
        self.logger.info(f"CRD {crd.name} is established")

    def _delete_one(self, crd):
        try:
            self.client.delete(crd.name)
        except NotFoundError:
            self.logger.info(f"CRD {crd.name} not found, nothing to delete")
            return Outcome.NOOP
        self.logger.info(f"Deleted CRD: {crd.name}")
        return Outcome.DELETED


def process_crds(paths, operation, client=None, strict=False, **reconciler_options):
    """Load CRDs from ``paths`` and apply or delete them.

    Loading completes before the first cluster call, so a bad manifest never
    leaves the cluster half-updated.

    Args:
        paths: Files or directories holding CRD manifests
        operation: Operation.APPLY or Operation.DELETE
        client: Cluster client; a CRDClient is built when omitted
        strict: Fail on non-CRD documents instead of skipping them
        **reconciler_options: Passed to CRDReconciler
    """
    log = reconciler_options.get("logger", logger)
    crds = load_crds(paths, strict=strict, logger=log)
    if client is None:
        client = CRDClient()
    return CRDReconciler(client, **reconciler_options).process(crds, operation)
