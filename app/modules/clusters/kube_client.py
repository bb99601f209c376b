"""
Kubernetes API access for a provisioned environment.

Each KubeClient owns its own ApiClient built from a kubeconfig string; nothing
is written to the process-wide default configuration, so concurrent
provisioning tasks never see each other's clusters.
"""
import logging
from typing import Dict, List

import yaml
from kubernetes import client, config
from kubernetes.client.rest import ApiException

logger = logging.getLogger(__name__)

RBAC_API_GROUP = "rbac.authorization.k8s.io"


def _is_already_exists(e: ApiException) -> bool:
    return e.status == 409


class KubeClient:
    def __init__(self, api_client: client.ApiClient):
        self.api_client = api_client
        self.core_v1 = client.CoreV1Api(api_client)
        self.rbac_v1 = client.RbacAuthorizationV1Api(api_client)

    @classmethod
    def from_kubeconfig(cls, kubeconfig_yaml: str) -> "KubeClient":
        try:
            config_dict = yaml.safe_load(kubeconfig_yaml)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid kubeconfig: {e}")
        if not isinstance(config_dict, dict):
            raise ValueError("Invalid kubeconfig: expected a mapping")
        return cls(config.new_client_from_config_dict(config_dict))

    def count_nodes(self) -> int:
        nodes = self.core_v1.list_node(limit=5, timeout_seconds=30)
        return len(nodes.items or [])

    def create_namespace(self, name: str, labels: Dict[str, str] = None) -> bool:
        """Returns False when the namespace already existed."""
        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {"name": name, "labels": labels or {}},
        }
        return self._create(lambda: self.core_v1.create_namespace(body=body), "Namespace", name)

    def create_service_account(self, namespace: str, name: str) -> bool:
        body = {
            "apiVersion": "v1",
            "kind": "ServiceAccount",
            "metadata": {"name": name, "namespace": namespace},
        }
        return self._create(
            lambda: self.core_v1.create_namespaced_service_account(namespace=namespace, body=body),
            "ServiceAccount", f"{namespace}/{name}",
        )

    def create_role(self, namespace: str, name: str, rules: List[dict]) -> bool:
        body = {
            "apiVersion": f"{RBAC_API_GROUP}/v1",
            "kind": "Role",
            "metadata": {"name": name, "namespace": namespace},
            "rules": rules,
        }
        return self._create(
            lambda: self.rbac_v1.create_namespaced_role(namespace=namespace, body=body),
            "Role", f"{namespace}/{name}",
        )

    def create_role_binding(self, namespace: str, name: str, role_name: str, service_account: str) -> bool:
        body = {
            "apiVersion": f"{RBAC_API_GROUP}/v1",
            "kind": "RoleBinding",
            "metadata": {"name": name, "namespace": namespace},
            "roleRef": {"apiGroup": RBAC_API_GROUP, "kind": "Role", "name": role_name},
            "subjects": [{"kind": "ServiceAccount", "name": service_account, "namespace": namespace}],
        }
        return self._create(
            lambda: self.rbac_v1.create_namespaced_role_binding(namespace=namespace, body=body),
            "RoleBinding", f"{namespace}/{name}",
        )

    def _create(self, call, kind: str, name: str) -> bool:
        try:
            call()
            logger.info(f"Created {kind} {name}")
            return True
        except ApiException as e:
            if _is_already_exists(e):
                logger.info(f"{kind} {name} already exists")
                return False
            raise

    def close(self) -> None:
        self.api_client.close()
