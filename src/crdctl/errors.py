"""Error types raised by crdctl."""


class CRDCtlError(Exception):
    """Base class for all crdctl errors."""


class DiscoveryError(CRDCtlError):
    """A manifest path does not exist or cannot be read."""

    def __init__(self, path, message):
        self.path = str(path)
        super().__init__(f"{self.path}: {message}")


class ParseError(CRDCtlError):
    """A manifest document is malformed or is not acceptable CRD content.

    Args:
        path: File the document came from
        message: What is wrong with it
        document: 1-based index of the document within the file
        line: 1-based line number, when the YAML parser reports one
    """

    def __init__(self, path, message, document=None, line=None):
        self.path = str(path)
        self.document = document
        self.line = line

        location = self.path
        if document is not None:
            location += f" (document {document}"
            location += f", line {line})" if line is not None else ")"
        elif line is not None:
            location += f" (line {line})"
        super().__init__(f"{location}: {message}")


class ClusterError(CRDCtlError):
    """Failure reported by the Kubernetes API server."""

    def __init__(self, message, status=None, reason=None):
        self.status = status
        self.reason = reason
        super().__init__(message)


class NotFoundError(ClusterError):
    """The requested object does not exist (HTTP 404)."""


class AlreadyExistsError(ClusterError):
    """Create was rejected because the object already exists (HTTP 409)."""


class ConflictError(ClusterError):
    """Update was rejected due to a stale resourceVersion (HTTP 409)."""


class ReconcileError(CRDCtlError):
    """A cluster-side failure while reconciling a single CRD."""

    def __init__(self, identity, operation, cause):
        self.identity = identity
        self.operation = operation
        self.cause = cause
        super().__init__(f"failed to {operation} CRD {identity}: {cause}")


class AggregateReconcileError(ReconcileError):
    """One or more objects failed during a reconcile run.

    Carries every per-object error plus the full result so that callers can
    report partial progress.
    """

    def __init__(self, errors, result=None):
        self.errors = list(errors)
        self.result = result
        first = self.errors[0]
        CRDCtlError.__init__(self, self._format(self.errors))
        self.identity = first.identity
        self.operation = first.operation
        self.cause = first.cause

    @staticmethod
    def _format(errors):
        if len(errors) == 1:
            return str(errors[0])
        lines = [f"{len(errors)} CRDs failed:"]
        lines.extend(f"  - {e}" for e in errors)
        return "\n".join(lines)


class WaitError(CRDCtlError):
    """Base class for condition wait failures."""


class WaitTimeoutError(WaitError):
    """The condition was not satisfied before the timeout elapsed."""


class WaitCancelledError(WaitError):
    """The caller cancelled the wait or its own deadline passed first."""

    def __init__(self, message, cause):
        self.cause = cause
        super().__init__(f"{message}: {cause}")


class WaitFailedError(WaitError):
    """Fetching the observed state raised during polling."""
