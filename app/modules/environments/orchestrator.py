import logging
from typing import List, Optional

from app.core.exceptions import InvalidRequesterError
from app.core.tasks import TaskSupervisor
from app.modules.clusters.k3d import K3dClusterManager, cluster_name_for
from app.modules.environment_users.schemas import EnvironmentRole, EnvironmentUserResponse
from app.modules.environment_users.service import EnvironmentUserService
from app.modules.environments.provision_registry import ProvisionRegistry
from app.modules.environments.provisioning_worker import ProvisioningWorker
from app.modules.environments.schemas import EnvironmentCreate, EnvironmentResponse, EnvironmentStatus
from app.modules.environments.service import EnvironmentService
from app.modules.secrets.store import KubeconfigRef, KubeconfigSecretStore

logger = logging.getLogger(__name__)


class EnvironmentOrchestrator:
    """Owns the environment lifecycle: create, background provisioning, cancel, delete."""

    def __init__(
        self,
        environment_service: EnvironmentService,
        environment_user_service: EnvironmentUserService,
        cluster_manager: K3dClusterManager,
        secret_store: KubeconfigSecretStore,
        supervisor: TaskSupervisor,
        worker: ProvisioningWorker,
        registry: ProvisionRegistry,
    ):
        self.environment_service = environment_service
        self.environment_user_service = environment_user_service
        self.cluster_manager = cluster_manager
        self.secret_store = secret_store
        self.supervisor = supervisor
        self.worker = worker
        self.registry = registry

    def create(self, environment_data: EnvironmentCreate, requester_id: str) -> EnvironmentResponse:
        """
        Persist the environment in CREATING, bind the requester as ADMIN and start
        provisioning in the background. Returns immediately; the returned status
        is a snapshot, poll find_by_id for live status.
        """
        if not requester_id:
            raise InvalidRequesterError("Environment creation requires a requesting user")

        environment = self.environment_service.create_environment(environment_data)
        try:
            self.environment_user_service.create_binding(environment.id, requester_id, EnvironmentRole.ADMIN)
        except Exception:
            self.environment_service.delete_environment(environment.id)
            raise

        handle = self.registry.register(environment.id)
        try:
            self.supervisor.submit(
                self.worker.run, environment.id, handle, task_name=f"provision-{environment.id}"
            )
        except RuntimeError as e:
            # Supervisor already shut down
            self.registry.unregister(environment.id, handle)
            self.environment_service.update_environment_status(
                environment.id, EnvironmentStatus.FAILED, error_message=str(e)
            )
            raise
        logger.info(f"Environment {environment.id} ({environment.name}) accepted for provisioning")
        return environment

    def cancel_provision(self, environment_id: str) -> bool:
        """Cooperative cancel. A no-op returning False when nothing is provisioning."""
        return self.registry.cancel(environment_id)

    def is_provisioning(self, environment_id: str) -> bool:
        return environment_id in self.registry

    def delete(self, environment_id: str) -> bool:
        """
        Remove the environment. Cluster and kubeconfig cleanup are best-effort:
        failures are logged and the row is deleted regardless.
        """
        environment = self.environment_service.get_environment_by_id(environment_id)
        if environment is None:
            return False

        self.registry.cancel(environment_id)
        self.environment_service.update_environment_status(environment_id, EnvironmentStatus.DELETING)

        cluster_name = cluster_name_for(environment_id)
        try:
            self.cluster_manager.delete_cluster(cluster_name)
        except Exception as e:
            logger.error(f"Error deleting cluster {cluster_name}: {str(e)}")

        if environment.kubeconfig_ref:
            try:
                self.secret_store.delete(KubeconfigRef.parse(environment.kubeconfig_ref))
            except Exception as e:
                logger.warning(f"Could not delete kubeconfig for environment {environment_id}: {e}")

        self.environment_service.delete_environment(environment_id)
        logger.info(f"Environment {environment_id} deleted")
        return True

    def find_by_id(self, environment_id: str) -> Optional[EnvironmentResponse]:
        return self.environment_service.get_environment_by_id(environment_id)

    def find_all(self) -> List[EnvironmentResponse]:
        return self.environment_service.list_environments()

    def find_bindings_for_user(self, user_id: str) -> List[EnvironmentUserResponse]:
        return self.environment_user_service.list_by_user(user_id)
