"""
Process-wide service graph.

The orchestrators own state shared across requests (provisioning registry,
background task pool, master key), so they are built once and reused.
"""
import logging
from functools import lru_cache

from app.config import settings
from app.core.tasks import TaskSupervisor
from app.database.supabase_client import get_service_supabase
from app.modules.clusters.k3d import K3dClusterManager
from app.modules.environment_users.service import EnvironmentUserService
from app.modules.environments.orchestrator import EnvironmentOrchestrator
from app.modules.environments.provision_registry import ProvisionRegistry
from app.modules.environments.provisioning_worker import ProvisioningWorker
from app.modules.environments.service import EnvironmentService
from app.modules.secrets.file_store import FileKubeconfigSecretStore
from app.modules.secrets.master_key import MasterKeyProvider
from app.modules.secrets.s3_store import S3KubeconfigSecretStore
from app.modules.secrets.store import KubeconfigSecretStore
from app.modules.teams.orchestrator import TeamOrchestrator
from app.modules.teams.rbac import NamespaceRbacProvisioner
from app.modules.teams.service import TeamService

logger = logging.getLogger(__name__)


@lru_cache
def get_master_key_provider() -> MasterKeyProvider:
    return MasterKeyProvider()


@lru_cache
def get_secret_store() -> KubeconfigSecretStore:
    backend = settings.secret_store_backend.lower()
    if backend == "file":
        return FileKubeconfigSecretStore(settings.secret_store_dir, get_master_key_provider())
    if backend == "s3":
        return S3KubeconfigSecretStore(get_master_key_provider())
    raise ValueError(f"Unknown secret store backend: {settings.secret_store_backend}")


@lru_cache
def get_task_supervisor() -> TaskSupervisor:
    return TaskSupervisor(max_workers=settings.background_max_workers, name="provisioning")


# Onboarding has its own pool and never queues behind cluster creates
@lru_cache
def get_onboarding_supervisor() -> TaskSupervisor:
    return TaskSupervisor(max_workers=settings.onboarding_max_workers, name="onboarding")


@lru_cache
def get_provision_registry() -> ProvisionRegistry:
    return ProvisionRegistry()


@lru_cache
def get_environment_orchestrator() -> EnvironmentOrchestrator:
    client = get_service_supabase()
    environment_service = EnvironmentService(client)
    cluster_manager = K3dClusterManager()
    registry = get_provision_registry()
    worker = ProvisioningWorker(
        environment_service=environment_service,
        cluster_manager=cluster_manager,
        secret_store=get_secret_store(),
        registry=registry,
    )
    return EnvironmentOrchestrator(
        environment_service=environment_service,
        environment_user_service=EnvironmentUserService(client),
        cluster_manager=cluster_manager,
        secret_store=get_secret_store(),
        supervisor=get_task_supervisor(),
        worker=worker,
        registry=registry,
    )


@lru_cache
def get_team_orchestrator() -> TeamOrchestrator:
    client = get_service_supabase()
    return TeamOrchestrator(
        team_service=TeamService(client),
        environment_service=EnvironmentService(client),
        provisioner=NamespaceRbacProvisioner(get_secret_store()),
        supervisor=get_onboarding_supervisor(),
    )


def shutdown_background_work() -> None:
    """
    Stop background work without stranding rows.

    Live provisioning tokens are cancelled first, so running workers stop at
    their next check and queued ones persist CANCELLED as soon as they start.
    Both pools are then drained. A worker blocked inside a k3d command finishes
    that command (bounded by its timeout) before it notices the cancellation.
    """
    cancelled = get_provision_registry().cancel_all()
    logger.info(f"Shutting down background work ({cancelled} provisioning task(s) cancelled)")
    get_task_supervisor().shutdown(wait_for_tasks=True)
    get_onboarding_supervisor().shutdown(wait_for_tasks=True)
