"""Tests for the kopf startup/cleanup hooks."""

import os
from unittest.mock import MagicMock, patch

import kopf
import pytest

import crdctl.main as operator_main
from crdctl.wait.poller import CancelContext


@pytest.fixture
def operator_env(fake_client, monkeypatch):
    monkeypatch.setattr(operator_main, "operator_cancel", CancelContext())
    with patch("crdctl.main.load_kube_config") as load_config, patch(
        "crdctl.main.CRDClient", return_value=fake_client
    ):
        yield load_config


class TestStartup:
    """Test CRDs applied when the operator starts."""

    def test_applies_crds_from_env(self, operator_env, fake_client, crds_dir, monkeypatch):
        monkeypatch.setenv("CRDS_PATH", f"{crds_dir / 'a.yaml'},{crds_dir / 'dir'}")
        monkeypatch.setenv("CRDCTL_WAIT_TIMEOUT", "5")
        settings = MagicMock()

        operator_main.startup_fn(settings=settings)

        operator_env.assert_called_once_with(None)
        assert set(fake_client.objects) == {"foos.example.com", "bars.example.com"}
        assert settings.peering.standalone is True

    def test_manage_crds_disabled(self, operator_env, fake_client, crds_dir, monkeypatch):
        monkeypatch.setenv("CRDS_PATH", str(crds_dir))
        monkeypatch.setenv("MANAGE_CRDS", "false")
        operator_main.startup_fn(settings=MagicMock())
        assert fake_client.calls == []

    def test_empty_path_is_noop(self, operator_env, fake_client):
        operator_main.startup_fn(settings=MagicMock())
        assert fake_client.calls == []

    def test_failure_is_permanent(self, operator_env, tmp_path, monkeypatch):
        monkeypatch.setenv("CRDS_PATH", str(tmp_path / "missing"))
        with pytest.raises(kopf.PermanentError, match="missing"):
            operator_main.startup_fn(settings=MagicMock())


class TestCleanup:
    """Test optional CRD removal on shutdown."""

    def test_keeps_crds_by_default(self, operator_env, fake_client, crds_dir, monkeypatch):
        monkeypatch.setenv("CRDS_PATH", str(crds_dir))
        operator_main.startup_fn(settings=MagicMock())

        operator_main.cleanup_fn()

        assert len(fake_client.objects) == 2
        assert operator_main.operator_cancel.cancelled

    def test_deletes_when_enabled(self, operator_env, fake_client, crds_dir, monkeypatch):
        monkeypatch.setenv("CRDS_PATH", os.pathsep.join([str(crds_dir)]))
        monkeypatch.setenv("DELETE_CRDS_ON_SHUTDOWN", "true")
        operator_main.startup_fn(settings=MagicMock())

        operator_main.cleanup_fn()

        assert fake_client.objects == {}
