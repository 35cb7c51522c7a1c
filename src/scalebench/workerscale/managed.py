"""Managed control plane (ROSA) machine pool editing via the ``rosa`` CLI.

The CLI is the only way to resize a managed worker pool, so it is wrapped
behind the narrow ``ManagedPoolEditor`` protocol that tests replace with a
fake.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from .types import utc_now

logger = logging.getLogger(__name__)

_CLI_TIMEOUT_SECONDS = 300


class ManagedCliError(Exception):
    """Raised when the managed CLI is missing, unauthenticated or fails."""

    pass


@dataclass
class PoolBounds:
    """Replica bounds for a managed machine pool.

    With ``autoscaling`` the pool gets min/max bounds; otherwise it is set
    to a fixed count of ``max_replicas``.
    """

    min_replicas: int
    max_replicas: int
    autoscaling: bool = False

    def to_args(self) -> list[str]:
        args = [f"--enable-autoscaling={str(self.autoscaling).lower()}"]
        if self.autoscaling:
            args.append(f"--min-replicas={self.min_replicas}")
            args.append(f"--max-replicas={self.max_replicas}")
        else:
            args.append(f"--replicas={self.max_replicas}")
        return args


class ManagedPoolEditor(Protocol):
    """Edits a managed worker pool."""

    def verify(self) -> None: ...

    def edit_machine_pool(self, cluster_id: str, pool: str, bounds: PoolBounds) -> datetime: ...

    def describe_cluster_id(self, cluster_id: str) -> str: ...


class RosaCli:
    """``rosa`` command-line wrapper."""

    def __init__(self, login_env: str = "staging", binary: str = "rosa"):
        self.login_env = login_env
        self.binary = binary

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        cmd = [self.binary, *args]
        logger.debug("Running: %s", " ".join(cmd))
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=_CLI_TIMEOUT_SECONDS,
                env=os.environ.copy(),
            )
        except subprocess.TimeoutExpired:
            raise ManagedCliError(f"{' '.join(cmd[:3])} timed out after {_CLI_TIMEOUT_SECONDS}s")  # noqa: B904
        except OSError as e:
            raise ManagedCliError(f"Failed to run {self.binary}: {e}")  # noqa: B904

    def _login_args(self) -> list[str]:
        """Build ``rosa login`` arguments from the environment.

        Raises:
            ManagedCliError: If no credentials are available
        """
        env = os.environ.get("ROSA_LOGIN_ENV") or self.login_env
        client_id = os.environ.get("ROSA_SSO_CLIENT_ID", "")
        client_secret = os.environ.get("ROSA_SSO_CLIENT_SECRET", "")
        token = os.environ.get("ROSA_TOKEN", "")
        if client_id and client_secret:
            return ["login", "--env", env, "--client-id", client_id, "--client-secret", client_secret]
        if token:
            return ["login", "--env", env, "--token", token]
        raise ManagedCliError(
            "You are not logged in. Run 'rosa login' or supply "
            "ROSA_SSO_CLIENT_ID/ROSA_SSO_CLIENT_SECRET or ROSA_TOKEN"
        )

    def verify(self) -> None:
        """Check that the CLI is installed and logged in, logging in if possible.

        Raises:
            ManagedCliError: If the CLI is missing or cannot authenticate
        """
        if shutil.which(self.binary) is None:
            raise ManagedCliError("ROSA CLI is not installed. Please install it and retry.")
        logger.info("ROSA CLI is installed")

        result = self._run(["whoami"])
        if result.returncode == 0:
            logger.info("ROSA CLI is logged in")
            logger.debug(result.stdout)
            return

        logger.info("ROSA CLI is not logged in, attempting login")
        login = self._run(self._login_args())
        if login.returncode != 0:
            # Output is not echoed: the command line carries credentials
            raise ManagedCliError("rosa login failed")
        logger.info("ROSA CLI login succeeded")

    def edit_machine_pool(self, cluster_id: str, pool: str, bounds: PoolBounds) -> datetime:
        """Edit a machine pool's replica bounds.

        Returns:
            Trigger time: taken just before the CLI call, truncated to the second

        Raises:
            ManagedCliError: If the edit fails
        """
        args = ["edit", "machinepool", "-c", cluster_id, pool, *bounds.to_args()]
        trigger_time = utc_now()
        result = self._run(args)
        if result.returncode != 0:
            raise ManagedCliError(
                f"Failed to edit machinepool {pool}: {(result.stderr or result.stdout).strip()}"
            )
        logger.info("Machinepool %s edited on cluster %s", pool, cluster_id)
        logger.debug(result.stdout)
        return trigger_time

    def describe_cluster_id(self, cluster_id: str) -> str:
        """Return the managed service ID of a cluster.

        Hosted control plane clusters report an external ID in their
        ClusterVersion; the CLI maps it to the ID it expects.

        Raises:
            ManagedCliError: If the cluster cannot be described
        """
        result = self._run(["describe", "cluster", "-c", cluster_id, "-o", "json"])
        if result.returncode != 0:
            raise ManagedCliError(f"Failed to describe cluster: {(result.stderr or result.stdout).strip()}")
        try:
            data = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ManagedCliError(f"Failed to parse rosa output: {e}")  # noqa: B904
        actual_id = data.get("id") if isinstance(data, dict) else None
        if not isinstance(actual_id, str) or not actual_id:
            raise ManagedCliError("ID field not found or invalid in rosa describe output")
        return actual_id
