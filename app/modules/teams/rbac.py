import logging
from typing import Callable, List, Optional

from app.config import settings
from app.modules.clusters.kube_client import KubeClient
from app.modules.secrets.store import KubeconfigRef, KubeconfigSecretStore

logger = logging.getLogger(__name__)

MANAGED_BY_LABEL = {"app.kubernetes.io/managed-by": "kubenv-backend"}


class NamespaceRbacProvisioner:
    """
    Creates a team's namespace and its namespace-scoped RBAC principal.

    Steps run in order (namespace, service account, role, role binding) with no
    rollback: the first failure aborts and propagates. Objects that already
    exist are accepted, so calling setup again after a partial failure is safe.
    """

    def __init__(
        self,
        secret_store: KubeconfigSecretStore,
        client_factory: Callable[[str], KubeClient] = KubeClient.from_kubeconfig,
        role_rules: Optional[List[dict]] = None,
    ):
        self.secret_store = secret_store
        self.client_factory = client_factory
        self.role_rules = role_rules if role_rules is not None else settings.get_team_role_rules()
        self.service_account_name = settings.team_service_account_name
        self.role_name = settings.team_role_name
        self.role_binding_name = settings.team_role_binding_name

    def setup(self, kubeconfig_ref: KubeconfigRef, team_name: str) -> None:
        kubeconfig = self.secret_store.load(kubeconfig_ref)
        kube = self.client_factory(kubeconfig)
        try:
            kube.create_namespace(team_name, labels=MANAGED_BY_LABEL)
            kube.create_service_account(team_name, self.service_account_name)
            kube.create_role(team_name, self.role_name, self.role_rules)
            kube.create_role_binding(
                team_name, self.role_binding_name, self.role_name, self.service_account_name
            )
        finally:
            kube.close()
        logger.info(f"Namespace and RBAC configured for namespace={team_name}")
