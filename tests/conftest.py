"""Shared pytest fixtures for crdctl tests."""

import copy
import threading

import pytest
import yaml

from crdctl.errors import AlreadyExistsError, ConflictError, NotFoundError


class FakeCRDClient:
    """In-memory stand-in for CRDClient.

    Stores bodies by name, assigns increasing resourceVersions, enforces
    optimistic concurrency on update and marks created CRDs Established.
    ``fail(method, name, *errors)`` queues errors raised by the next calls.
    """

    def __init__(self, establish=True):
        self.objects = {}
        self.calls = []
        self.establish = establish
        self._failures = {}
        self._version = 0
        self._lock = threading.Lock()

    def fail(self, method, name, *errors):
        self._failures.setdefault((method, name), []).extend(errors)

    def _record(self, method, name):
        with self._lock:
            self.calls.append((method, name))
            queue = self._failures.get((method, name))
            if queue:
                raise queue.pop(0)

    def _next_version(self):
        self._version += 1
        return str(self._version)

    def get(self, name):
        self._record("get", name)
        with self._lock:
            if name not in self.objects:
                raise NotFoundError(f"get CRD {name}: 404 Not Found", status=404)
            return copy.deepcopy(self.objects[name])

    def create(self, body):
        name = body["metadata"]["name"]
        self._record("create", name)
        with self._lock:
            if name in self.objects:
                raise AlreadyExistsError(f"create CRD {name}: 409 Conflict", status=409)
            stored = copy.deepcopy(body)
            stored["metadata"]["resourceVersion"] = self._next_version()
            if self.establish:
                stored["status"] = {
                    "conditions": [{"type": "Established", "status": "True"}]
                }
            self.objects[name] = stored
            return copy.deepcopy(stored)

    def update(self, body):
        name = body["metadata"]["name"]
        self._record("update", name)
        with self._lock:
            current = self.objects.get(name)
            if current is None:
                raise NotFoundError(f"update CRD {name}: 404 Not Found", status=404)
            if body["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
                raise ConflictError(f"update CRD {name}: 409 Conflict", status=409)
            stored = copy.deepcopy(body)
            stored["metadata"]["resourceVersion"] = self._next_version()
            if "status" in current:
                stored["status"] = current["status"]
            self.objects[name] = stored
            return copy.deepcopy(stored)

    def delete(self, name):
        self._record("delete", name)
        with self._lock:
            if name not in self.objects:
                raise NotFoundError(f"delete CRD {name}: 404 Not Found", status=404)
            del self.objects[name]

    def bump(self, name):
        """Simulate another writer touching the stored object."""
        with self._lock:
            self.objects[name]["metadata"]["resourceVersion"] = self._next_version()

    def mutations(self):
        return [c for c in self.calls if c[0] != "get"]


class VirtualClock:
    """Clock whose sleep advances time instantly.

    ``on_sleep`` is called before each sleep with the clock, so tests can
    cancel a wait or change observed state at a given point.
    """

    def __init__(self, start=0.0):
        self.time = start
        self.sleeps = []
        self.on_sleep = None

    def now(self):
        return self.time

    def sleep(self, seconds, event):
        self.sleeps.append(seconds)
        if self.on_sleep is not None:
            self.on_sleep(self)
        if event.is_set():
            return True
        self.time += seconds
        return event.is_set()


def crd_document(plural, group, kind=None, versions=("v1",), description=None):
    """Build a minimal apiextensions.k8s.io/v1 CRD manifest."""
    kind = kind or plural.rstrip("s").capitalize()
    schema = {"type": "object"}
    if description:
        schema["description"] = description
    return {
        "apiVersion": "apiextensions.k8s.io/v1",
        "kind": "CustomResourceDefinition",
        "metadata": {"name": f"{plural}.{group}"},
        "spec": {
            "group": group,
            "names": {
                "plural": plural,
                "singular": plural.rstrip("s"),
                "kind": kind,
            },
            "scope": "Namespaced",
            "versions": [
                {
                    "name": v,
                    "served": True,
                    "storage": i == 0,
                    "schema": {"openAPIV3Schema": schema},
                }
                for i, v in enumerate(versions)
            ],
        },
    }


SETTINGS_ENV = (
    "DEBUG",
    "LOG_LEVEL",
    "CRDS_PATH",
    "CRDCTL_ERROR_POLICY",
    "CRDCTL_STRICT",
    "CRDCTL_WORKERS",
    "CRDCTL_WAIT_TIMEOUT",
    "CRDCTL_POLL_INTERVAL",
    "KUBECONFIG_CONTEXT",
    "MANAGE_CRDS",
    "DELETE_CRDS_ON_SHUTDOWN",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the developer's environment out of Settings.from_env."""
    for name in SETTINGS_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_client():
    return FakeCRDClient()


@pytest.fixture
def clock():
    return VirtualClock()


@pytest.fixture
def make_crd():
    return crd_document


@pytest.fixture
def write_manifest():
    """Write one or more documents to a YAML file and return its path."""

    def _write(path, *docs):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(yaml.safe_dump_all(list(docs), sort_keys=False))
        return path

    return _write


@pytest.fixture
def crds_dir(tmp_path, write_manifest):
    """Layout with a.yaml (foo.example.com) and dir/b.yaml (bar.example.com).

    dir/ also holds a README and a non-CRD manifest that must be skipped.
    """
    root = tmp_path / "crds"
    write_manifest(root / "a.yaml", crd_document("foos", "example.com", "Foo"))
    write_manifest(root / "dir" / "b.yaml", crd_document("bars", "example.com", "Bar"))
    (root / "dir" / "README.md").write_text("# not a manifest\n: : :")
    write_manifest(
        root / "dir" / "configmap.yaml",
        {"apiVersion": "v1", "kind": "ConfigMap", "metadata": {"name": "cm"}},
    )
    return root
