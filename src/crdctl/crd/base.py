"""Models for CustomResourceDefinitions read from manifests."""

import copy
import hashlib
import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

CRD_API_GROUP = "apiextensions.k8s.io"
CRD_KIND = "CustomResourceDefinition"
APPLIED_HASH_ANNOTATION = "crdctl.io/applied-hash"


class Operation(str, Enum):
    """What to do with a set of CRDs."""

    APPLY = "apply"
    DELETE = "delete"


class CRDCondition(BaseModel):
    """A status condition as reported by the API server."""

    type: str
    status: str  # True, False, Unknown
    reason: Optional[str] = None
    message: Optional[str] = None
    lastTransitionTime: Optional[datetime] = None

    class Config:
        extra = "allow"


class CRDObject(BaseModel):
    """One parsed CustomResourceDefinition.

    ``name`` (``<plural>.<group>``) is the identity used for dedup and for
    every cluster call. ``body`` is the full manifest submitted to the API.
    """

    name: str
    group: str
    kind: str
    versions: List[str] = Field(default_factory=list)
    body: Dict[str, Any]
    source: Optional[str] = None
    document: Optional[int] = None

    class Config:
        frozen = True

    @property
    def identity(self):
        return self.name

    @property
    def location(self):
        if self.source is None:
            return "<memory>"
        if self.document is None:
            return self.source
        return f"{self.source}#{self.document}"

    @property
    def content_hash(self):
        """Stable hash of the desired body, ignoring the applied-hash marker."""
        body = copy.deepcopy(self.body)
        metadata = body.get("metadata") or {}
        annotations = metadata.get("annotations") or {}
        annotations.pop(APPLIED_HASH_ANNOTATION, None)
        if not annotations:
            metadata.pop("annotations", None)
        data = json.dumps(body, sort_keys=True, default=str)
        return hashlib.sha256(data.encode()).hexdigest()

    def desired_body(self, resource_version=None):
        """Body to submit: a copy stamped with the applied hash.

        Args:
            resource_version: Server resourceVersion to carry on update
        """
        body = copy.deepcopy(self.body)
        metadata = body.setdefault("metadata", {})
        annotations = metadata.get("annotations") or {}
        annotations[APPLIED_HASH_ANNOTATION] = self.content_hash
        metadata["annotations"] = annotations
        if resource_version is not None:
            metadata["resourceVersion"] = resource_version
        else:
            metadata.pop("resourceVersion", None)
        return body


def _contains(live, desired):
    if isinstance(desired, dict):
        return isinstance(live, dict) and all(
            k in live and _contains(live[k], v) for k, v in desired.items()
        )
    if isinstance(desired, list):
        return (
            isinstance(live, list)
            and len(live) == len(desired)
            and all(_contains(a, b) for a, b in zip(live, desired))
        )
    return live == desired


def matches_live(crd, existing):
    """True when the live object still carries everything the manifest sets.

    Compares ``spec``, labels and annotations. Fields the API server adds
    (defaults, status, bookkeeping metadata) are ignored.
    """
    if applied_hash(existing) != crd.content_hash:
        return False
    desired = crd.desired_body()
    live_metadata = existing.get("metadata") or {}
    desired_metadata = desired.get("metadata") or {}
    return (
        _contains(existing.get("spec"), desired.get("spec"))
        and _contains(
            live_metadata.get("labels") or {}, desired_metadata.get("labels") or {}
        )
        and _contains(
            live_metadata.get("annotations") or {},
            desired_metadata.get("annotations") or {},
        )
    )


def applied_hash(existing):
    """Return the applied-hash annotation of a stored object, if any."""
    metadata = (existing or {}).get("metadata") or {}
    return (metadata.get("annotations") or {}).get(APPLIED_HASH_ANNOTATION)


def conditions_of(obj):
    """Parse ``status.conditions`` of a stored object."""
    status = (obj or {}).get("status") or {}
    return [CRDCondition(**c) for c in status.get("conditions") or []]


def is_established(obj):
    """True when the CRD's Established condition is True."""
    return any(
        c.type == "Established" and c.status == "True" for c in conditions_of(obj)
    )
