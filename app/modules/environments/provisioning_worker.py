import logging
from typing import Callable, Optional

from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from app.config import settings
from app.core.exceptions import ClusterValidationError, ProvisioningCancelledError
from app.core.tasks import CancellationToken
from app.modules.clusters.k3d import K3dClusterManager, cluster_name_for
from app.modules.clusters.kube_client import KubeClient
from app.modules.environments.provision_registry import ProvisionHandle, ProvisionRegistry
from app.modules.environments.schemas import EnvironmentStatus
from app.modules.environments.service import EnvironmentService
from app.modules.secrets.store import KubeconfigSecretStore

logger = logging.getLogger(__name__)


class ProvisioningWorker:
    """
    Drives one environment from PROVISIONING to a terminal status.

    Runs on the task supervisor, off the request path. A run performs up to
    `max_attempts` provisioning attempts (create cluster, fetch kubeconfig,
    check nodes, store kubeconfig, mark ready) with exponential backoff and
    jitter between them. Cancellation is cooperative: the token is checked
    before each attempt, after each external command returns and during
    backoff. Every outcome is persisted, and the registry entry is always
    removed.
    """

    def __init__(
        self,
        environment_service: EnvironmentService,
        cluster_manager: K3dClusterManager,
        secret_store: KubeconfigSecretStore,
        registry: ProvisionRegistry,
        client_factory: Callable[[str], KubeClient] = KubeClient.from_kubeconfig,
        max_attempts: Optional[int] = None,
        backoff_initial: Optional[float] = None,
        backoff_max: Optional[float] = None,
        backoff_jitter: Optional[float] = None,
    ):
        self.environment_service = environment_service
        self.cluster_manager = cluster_manager
        self.secret_store = secret_store
        self.registry = registry
        self.client_factory = client_factory
        self.max_attempts = max_attempts if max_attempts is not None else settings.provision_max_attempts
        self.backoff_initial = backoff_initial if backoff_initial is not None else settings.provision_backoff_initial_seconds
        self.backoff_max = backoff_max if backoff_max is not None else settings.provision_backoff_max_seconds
        self.backoff_jitter = backoff_jitter if backoff_jitter is not None else settings.provision_backoff_jitter_seconds

    def run(self, environment_id: str, handle: ProvisionHandle) -> EnvironmentStatus:
        token = handle.token
        cluster_name = cluster_name_for(environment_id)
        try:
            token.raise_if_cancelled()
            logger.info(f"Provisioning environment {environment_id} (cluster {cluster_name})")
            self.environment_service.update_environment_status(environment_id, EnvironmentStatus.PROVISIONING)
            self._provision_with_retry(environment_id, cluster_name, token)
            logger.info(f"Provisioning completed for cluster {cluster_name}")
            return EnvironmentStatus.READY
        except ProvisioningCancelledError:
            logger.warning(f"Provisioning cancelled for environment {environment_id}")
            self._mark(environment_id, EnvironmentStatus.CANCELLED)
            self._discard_cluster(cluster_name)
            return EnvironmentStatus.CANCELLED
        except Exception as e:
            logger.error(f"Error provisioning cluster {cluster_name}: {str(e)}")
            self._mark(environment_id, EnvironmentStatus.FAILED, error_message=str(e))
            self._discard_cluster(cluster_name)
            return EnvironmentStatus.FAILED
        finally:
            self.registry.unregister(environment_id, handle)

    def _provision_with_retry(self, environment_id: str, cluster_name: str, token: CancellationToken) -> None:
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_initial, max=self.backoff_max)
            + wait_random(0, self.backoff_jitter),
            retry=retry_if_not_exception_type(ProvisioningCancelledError),
            sleep=token.sleep,
            before_sleep=self._log_retry(cluster_name),
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                self._provision_attempt(
                    environment_id, cluster_name, token, attempt.retry_state.attempt_number
                )

    def _provision_attempt(
        self, environment_id: str, cluster_name: str, token: CancellationToken, attempt_number: int
    ) -> None:
        token.raise_if_cancelled()
        if attempt_number > 1:
            # A failed attempt may leave a half-created cluster holding the name
            self._discard_cluster(cluster_name)

        self.cluster_manager.create_cluster(cluster_name)
        token.raise_if_cancelled()

        kubeconfig = self.cluster_manager.fetch_kubeconfig(cluster_name)
        token.raise_if_cancelled()

        logger.info(f"Validating cluster {cluster_name}")
        self._validate_cluster_ready(kubeconfig)
        token.raise_if_cancelled()

        logger.info(f"Storing kubeconfig for {environment_id}")
        ref = self.secret_store.store(environment_id, kubeconfig)
        try:
            token.raise_if_cancelled()
            self.environment_service.update_environment_status(
                environment_id, EnvironmentStatus.READY, kubeconfig_ref=str(ref)
            )
        except Exception:
            self._discard_secret(ref)
            raise

    def _validate_cluster_ready(self, kubeconfig: str) -> None:
        kube = self.client_factory(kubeconfig)
        try:
            node_count = kube.count_nodes()
        finally:
            kube.close()
        if node_count < 1:
            raise ClusterValidationError("No nodes found in cluster")

    def _log_retry(self, cluster_name: str):
        def before_sleep(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            delay = retry_state.next_action.sleep if retry_state.next_action else 0
            logger.warning(
                f"Attempt {retry_state.attempt_number} failed for cluster {cluster_name}, "
                f"retrying in {int(delay * 1000)} ms: {error}"
            )
        return before_sleep

    def _mark(self, environment_id: str, status: EnvironmentStatus, error_message: Optional[str] = None) -> None:
        try:
            self.environment_service.update_environment_status(
                environment_id, status, error_message=error_message
            )
        except Exception as e:
            logger.error(f"Failed to set environment {environment_id} status to {status.value}: {str(e)}")

    def _discard_cluster(self, cluster_name: str) -> None:
        try:
            self.cluster_manager.delete_cluster(cluster_name)
        except Exception as e:
            logger.debug(f"Cluster {cluster_name} not removed: {e}")

    def _discard_secret(self, ref) -> None:
        try:
            self.secret_store.delete(ref)
        except Exception as e:
            logger.warning(f"Could not delete kubeconfig {ref}: {e}")
