"""Tests for the crdctl command line."""

import logging
from unittest.mock import patch

import pytest
from kubernetes.config import ConfigException
from typer.testing import CliRunner

from crdctl.cli import app
from crdctl.errors import ClusterError, WaitTimeoutError

runner = CliRunner()


@pytest.fixture
def cluster(fake_client):
    """Route the CLI to the in-memory cluster."""
    with patch("crdctl.cli.load_kube_config") as load_config, patch(
        "crdctl.cli.CRDClient", return_value=fake_client
    ):
        yield load_config


def crds_args(*paths):
    args = []
    for p in paths:
        args += ["--crds-path", str(p)]
    return args


class TestApplyCommand:
    """Test `crdctl apply`."""

    def test_apply_creates(self, cluster, fake_client, crds_dir):
        result = runner.invoke(
            app, ["apply"] + crds_args(crds_dir / "a.yaml", crds_dir / "dir")
        )
        assert result.exit_code == 0, result.output
        assert "created  foos.example.com" in result.output
        assert "created  bars.example.com" in result.output
        assert "Successfully applied CRDs" in result.output
        assert set(fake_client.objects) == {"foos.example.com", "bars.example.com"}

    def test_apply_twice_is_noop(self, cluster, crds_dir):
        runner.invoke(app, ["apply"] + crds_args(crds_dir))
        result = runner.invoke(app, ["apply"] + crds_args(crds_dir))
        assert result.exit_code == 0, result.output
        assert "Summary: 2 noop" in result.output

    def test_requires_crds_path(self, cluster):
        result = runner.invoke(app, ["apply"])
        assert result.exit_code == 2

    def test_missing_path_fails_before_cluster(self, cluster, tmp_path):
        missing = tmp_path / "missing"
        result = runner.invoke(app, ["apply"] + crds_args(missing))
        assert result.exit_code == 1
        assert "failed to apply CRDs" in result.output
        assert str(missing) in result.output
        cluster.assert_not_called()

    def test_strict_rejects_non_crd(self, cluster, crds_dir):
        result = runner.invoke(app, ["apply", "--strict"] + crds_args(crds_dir))
        assert result.exit_code == 1
        assert "not a CRD" in result.output

    def test_kube_config_error(self, cluster, crds_dir):
        cluster.side_effect = ConfigException("no configuration found")
        result = runner.invoke(app, ["apply"] + crds_args(crds_dir))
        assert result.exit_code == 1
        assert "no configuration found" in result.output

    def test_debug_flag_sets_level(self, cluster, crds_dir):
        result = runner.invoke(app, ["--debug", "apply"] + crds_args(crds_dir))
        assert result.exit_code == 0, result.output
        assert logging.getLogger().level == logging.DEBUG

    def test_debug_from_environment(self, cluster, crds_dir, monkeypatch):
        monkeypatch.setenv("DEBUG", "true")
        runner.invoke(app, ["apply"] + crds_args(crds_dir))
        assert logging.getLogger().level == logging.DEBUG


class TestDeleteCommand:
    """Test `crdctl delete`."""

    def test_delete_reports_every_failure(self, cluster, fake_client, crds_dir):
        fake_client.fail("delete", "foos.example.com", ClusterError("denied", status=403))
        fake_client.fail("delete", "bars.example.com", ClusterError("denied", status=403))

        result = runner.invoke(app, ["delete"] + crds_args(crds_dir))

        assert result.exit_code == 1
        assert "failed   foos.example.com (denied)" in result.output
        assert "failed   bars.example.com (denied)" in result.output
        assert "failed to delete CRDs" in result.output

    def test_stop_on_error(self, cluster, fake_client, crds_dir):
        fake_client.fail("delete", "foos.example.com", ClusterError("denied", status=403))
        result = runner.invoke(
            app, ["delete", "--stop-on-error"] + crds_args(crds_dir / "a.yaml", crds_dir / "dir")
        )
        assert result.exit_code == 1
        assert "skipped  bars.example.com" in result.output

    def test_delete_missing_is_success(self, cluster, crds_dir):
        result = runner.invoke(app, ["delete"] + crds_args(crds_dir))
        assert result.exit_code == 0, result.output
        assert "Successfully deleted CRDs" in result.output


class TestWaitCommand:
    """Test `crdctl wait`."""

    def test_wait_success(self):
        with patch("crdctl.cli.load_kube_config"), patch(
            "crdctl.cli.StatefulResourceClient"
        ) as client_cls:
            result = runner.invoke(
                app, ["wait", "--name", "gpu-driver", "--timeout", "30", "--interval", "1"]
            )
        assert result.exit_code == 0, result.output
        client_cls.assert_called_once_with(
            "nvidia.com", "v1alpha1", "nvidiadrivers", namespace=None
        )
        client = client_cls.return_value
        assert client.polling_interval == 1
        args = client.wait_for_state.call_args
        assert args.args == ("gpu-driver", "ready", 30.0)
        assert "reached state 'ready'" in result.output

    def test_wait_timeout(self):
        with patch("crdctl.cli.load_kube_config"), patch(
            "crdctl.cli.StatefulResourceClient"
        ) as client_cls:
            client_cls.return_value.wait_for_state.side_effect = WaitTimeoutError(
                "timed out after 5s"
            )
            result = runner.invoke(
                app, ["wait", "--name", "gpu-driver", "--state", "upgrade-done"]
            )
        assert result.exit_code == 1
        assert "timed out" in result.output
