"""Tests for the rosa CLI wrapper."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from scalebench.workerscale.managed import ManagedCliError, PoolBounds, RosaCli


def _completed(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    return MagicMock(returncode=returncode, stdout=stdout, stderr=stderr)


class TestPoolBounds:
    """Tests for PoolBounds.to_args()."""

    def test_fixed_replicas(self):
        assert PoolBounds(3, 6).to_args() == ["--enable-autoscaling=false", "--replicas=6"]

    def test_autoscaling(self):
        assert PoolBounds(3, 6, autoscaling=True).to_args() == [
            "--enable-autoscaling=true",
            "--min-replicas=3",
            "--max-replicas=6",
        ]


class TestVerify:
    """Tests for RosaCli.verify()."""

    def test_not_installed(self):
        with patch("scalebench.workerscale.managed.shutil.which", return_value=None):
            with pytest.raises(ManagedCliError, match="not installed"):
                RosaCli().verify()

    def test_logged_in(self, mock_subprocess):
        with patch("scalebench.workerscale.managed.shutil.which", return_value="/usr/bin/rosa"):
            RosaCli().verify()
        assert mock_subprocess.call_args.args[0] == ["rosa", "whoami"]

    def test_logs_in_with_token(self, mock_subprocess, monkeypatch):
        monkeypatch.delenv("ROSA_SSO_CLIENT_ID", raising=False)
        monkeypatch.delenv("ROSA_SSO_CLIENT_SECRET", raising=False)
        monkeypatch.delenv("ROSA_LOGIN_ENV", raising=False)
        monkeypatch.setenv("ROSA_TOKEN", "tok")
        mock_subprocess.side_effect = [_completed(1), _completed(0)]

        with patch("scalebench.workerscale.managed.shutil.which", return_value="/usr/bin/rosa"):
            RosaCli(login_env="production").verify()

        login = mock_subprocess.call_args_list[1].args[0]
        assert login == ["rosa", "login", "--env", "production", "--token", "tok"]

    def test_sso_credentials_preferred(self, mock_subprocess, monkeypatch):
        monkeypatch.setenv("ROSA_SSO_CLIENT_ID", "id")
        monkeypatch.setenv("ROSA_SSO_CLIENT_SECRET", "secret")
        monkeypatch.setenv("ROSA_TOKEN", "tok")
        monkeypatch.setenv("ROSA_LOGIN_ENV", "integration")
        mock_subprocess.side_effect = [_completed(1), _completed(0)]

        with patch("scalebench.workerscale.managed.shutil.which", return_value="/usr/bin/rosa"):
            RosaCli().verify()

        login = mock_subprocess.call_args_list[1].args[0]
        assert login[1:4] == ["login", "--env", "integration"]
        assert "--client-id" in login

    def test_no_credentials(self, mock_subprocess, monkeypatch):
        for var in ("ROSA_SSO_CLIENT_ID", "ROSA_SSO_CLIENT_SECRET", "ROSA_TOKEN"):
            monkeypatch.delenv(var, raising=False)
        mock_subprocess.return_value = _completed(1)

        with patch("scalebench.workerscale.managed.shutil.which", return_value="/usr/bin/rosa"):
            with pytest.raises(ManagedCliError):
                RosaCli().verify()


class TestEditMachinePool:
    """Tests for RosaCli.edit_machine_pool()."""

    def test_command_line(self, mock_subprocess):
        trigger = RosaCli().edit_machine_pool("abc", "worker", PoolBounds(3, 5))

        assert mock_subprocess.call_args.args[0] == [
            "rosa",
            "edit",
            "machinepool",
            "-c",
            "abc",
            "worker",
            "--enable-autoscaling=false",
            "--replicas=5",
        ]
        assert trigger.microsecond == 0

    def test_failure(self, mock_subprocess):
        mock_subprocess.return_value = _completed(1, stderr="pool not found")
        with pytest.raises(ManagedCliError, match="pool not found"):
            RosaCli().edit_machine_pool("abc", "worker", PoolBounds(3, 5))


class TestDescribeCluster:
    """Tests for RosaCli.describe_cluster_id()."""

    def test_returns_id(self, mock_subprocess):
        mock_subprocess.return_value = _completed(0, stdout='{"id": "2abc", "name": "perf"}')
        assert RosaCli().describe_cluster_id("ext-id") == "2abc"

    def test_missing_id(self, mock_subprocess):
        mock_subprocess.return_value = _completed(0, stdout='{"name": "perf"}')
        with pytest.raises(ManagedCliError):
            RosaCli().describe_cluster_id("ext-id")

    def test_bad_json(self, mock_subprocess):
        mock_subprocess.return_value = _completed(0, stdout="not json")
        with pytest.raises(ManagedCliError):
            RosaCli().describe_cluster_id("ext-id")
