import re
import subprocess
import logging
from typing import List, Optional

from app.config import settings
from app.core.exceptions import ClusterCommandError

logger = logging.getLogger(__name__)

# k3d rejects cluster names longer than 32 characters
MAX_CLUSTER_NAME_LENGTH = 32
CLUSTER_NAME_PREFIX = "env-"


def cluster_name_for(environment_id: str) -> str:
    """Deterministic k3d cluster name for an environment id."""
    suffix = re.sub(r"[^a-z0-9]", "", str(environment_id).lower())
    return (CLUSTER_NAME_PREFIX + suffix)[:MAX_CLUSTER_NAME_LENGTH]


class K3dClusterManager:
    """Single-node k3d cluster lifecycle through the k3d CLI."""

    def __init__(
        self,
        binary: Optional[str] = None,
        create_timeout: Optional[int] = None,
        kubeconfig_timeout: Optional[int] = None,
        delete_timeout: Optional[int] = None,
    ):
        self.binary = binary or settings.k3d_binary
        self.create_timeout = create_timeout or settings.cluster_create_timeout_seconds
        self.kubeconfig_timeout = kubeconfig_timeout or settings.kubeconfig_timeout_seconds
        self.delete_timeout = delete_timeout or settings.cluster_delete_timeout_seconds

    def create_cluster(self, name: str) -> None:
        """Create the cluster and block until k3d reports it ready."""
        logger.info(f"Creating k3d cluster {name}")
        # The kubeconfig only ever lives in the encrypted secret store, never in ~/.kube/config
        self._run(
            [
                "cluster", "create", name, "--wait",
                "--kubeconfig-update-default=false",
                "--kubeconfig-switch-context=false",
            ],
            timeout=self.create_timeout,
        )

    def fetch_kubeconfig(self, name: str) -> str:
        logger.info(f"Retrieving kubeconfig for {name}")
        output = self._run(["kubeconfig", "get", name], timeout=self.kubeconfig_timeout)
        if not output.strip():
            raise ClusterCommandError([self.binary, "kubeconfig", "get", name], "empty kubeconfig")
        return output

    def delete_cluster(self, name: str) -> None:
        logger.info(f"Deleting k3d cluster {name}")
        self._run(["cluster", "delete", name], timeout=self.delete_timeout)

    def _run(self, args: List[str], timeout: int) -> str:
        cmd = [self.binary, *args]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout
            )
        except subprocess.TimeoutExpired as e:
            output = e.stdout if isinstance(e.stdout, str) else ""
            raise ClusterCommandError(cmd, output, timed_out=True)
        except OSError as e:
            raise ClusterCommandError(cmd, str(e))

        if result.returncode != 0:
            raise ClusterCommandError(cmd, (result.stderr or "") + (result.stdout or ""))
        return result.stdout
