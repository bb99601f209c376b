import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest

from app.core.exceptions import ClusterCommandError
from app.core.tasks import TaskSupervisor
from app.modules.environment_users.service import EnvironmentUserService
from app.modules.environments.orchestrator import EnvironmentOrchestrator
from app.modules.environments.provision_registry import ProvisionRegistry
from app.modules.environments.provisioning_worker import ProvisioningWorker
from app.modules.environments.service import EnvironmentService
from app.modules.secrets.file_store import FileKubeconfigSecretStore
from app.modules.secrets.master_key import MasterKeyProvider
from app.modules.teams.orchestrator import TeamOrchestrator
from app.modules.teams.rbac import NamespaceRbacProvisioner
from app.modules.teams.service import TeamService

TEST_MASTER_KEY = "0123456789abcdef0123456789abcdef"


# ---------------------------------------------------------------------------
# In-memory stand-in for the Supabase table API (only the calls the services use)
# ---------------------------------------------------------------------------

class _Response:
    def __init__(self, data):
        self.data = data


class FakeSupabase:
    UNIQUE = {
        "environments": [("name",)],
        "environment_users": [("environment_id", "user_id")],
        "teams": [("environment_id", "name")],
    }

    def __init__(self):
        self.tables = {}
        self.lock = threading.Lock()

    def table(self, name: str) -> "_Query":
        return _Query(self, name)

    def rows(self, name: str) -> list:
        with self.lock:
            return [dict(r) for r in self.tables.get(name, [])]


class _Query:
    def __init__(self, db: FakeSupabase, table: str):
        self.db = db
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.single = False
        self.order_by = None

    def select(self, *columns):
        self.op = "select"
        return self

    def insert(self, payload: dict):
        self.op, self.payload = "insert", payload
        return self

    def update(self, payload: dict):
        self.op, self.payload = "update", payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, column, value):
        self.filters.append((column, value))
        return self

    def maybe_single(self):
        self.single = True
        return self

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def _matches(self, row: dict) -> bool:
        return all(row.get(c) == v for c, v in self.filters)

    def execute(self):
        with self.db.lock:
            rows = self.db.tables.setdefault(self.table, [])
            if self.op == "insert":
                row = {
                    "id": str(uuid.uuid4()),
                    "created_at": datetime.now(timezone.utc).isoformat(),
                    **self.payload,
                }
                for columns in FakeSupabase.UNIQUE.get(self.table, []):
                    if any(all(r.get(c) == row.get(c) for c in columns) for r in rows):
                        raise Exception("duplicate key value violates unique constraint (23505)")
                rows.append(row)
                return _Response([dict(row)])

            matched = [r for r in rows if self._matches(r)]
            if self.op == "update":
                for r in matched:
                    r.update(self.payload)
                return _Response([dict(r) for r in matched])
            if self.op == "delete":
                self.db.tables[self.table] = [r for r in rows if not self._matches(r)]
                return _Response([dict(r) for r in matched])

            if self.order_by:
                column, desc = self.order_by
                matched = sorted(matched, key=lambda r: r.get(column) or "", reverse=desc)
            if self.single:
                # supabase-py returns no response at all for a missing maybe_single row
                return _Response(dict(matched[0])) if matched else None
            return _Response([dict(r) for r in matched])


# ---------------------------------------------------------------------------
# Cluster collaborators
# ---------------------------------------------------------------------------

class FakeClusterManager:
    def __init__(self, kubeconfig: str = "kubeconfig-A", create_failures: int = 0, on_create=None):
        self.kubeconfig = kubeconfig
        self.create_failures = create_failures
        self.on_create = on_create
        self.calls = []
        self.create_attempts = 0

    def create_cluster(self, name: str) -> None:
        self.calls.append(("create", name))
        self.create_attempts += 1
        if self.on_create:
            self.on_create(name)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise ClusterCommandError(["k3d", "cluster", "create", name], "simulated failure")

    def fetch_kubeconfig(self, name: str) -> str:
        self.calls.append(("kubeconfig", name))
        return self.kubeconfig

    def delete_cluster(self, name: str) -> None:
        self.calls.append(("delete", name))


class FakeKubeClient:
    def __init__(self, kubeconfig: str, nodes: int, fail_on: str = None):
        self.kubeconfig = kubeconfig
        self.nodes = nodes
        self.fail_on = fail_on
        self.calls = []
        self.closed = False

    def _record(self, name, *args):
        if self.fail_on == name:
            raise RuntimeError(f"{name} failed")
        self.calls.append((name, *args))
        return True

    def count_nodes(self) -> int:
        self.calls.append(("count_nodes",))
        return self.nodes

    def create_namespace(self, name, labels=None):
        return self._record("create_namespace", name)

    def create_service_account(self, namespace, name):
        return self._record("create_service_account", namespace, name)

    def create_role(self, namespace, name, rules):
        return self._record("create_role", namespace, name, rules)

    def create_role_binding(self, namespace, name, role_name, service_account):
        return self._record("create_role_binding", namespace, name, role_name, service_account)

    def close(self):
        self.closed = True


class FakeKubeFactory:
    def __init__(self, nodes: int = 1, fail_on: str = None):
        self.nodes = nodes
        self.fail_on = fail_on
        self.clients = []

    def __call__(self, kubeconfig: str) -> FakeKubeClient:
        kube = FakeKubeClient(kubeconfig, self.nodes, self.fail_on)
        self.clients.append(kube)
        return kube


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def db() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture()
def master_key_provider() -> MasterKeyProvider:
    return MasterKeyProvider(TEST_MASTER_KEY)


@pytest.fixture()
def secret_dir(tmp_path: Path) -> Path:
    return tmp_path / "secrets"


@pytest.fixture()
def secret_store(secret_dir: Path, master_key_provider) -> FileKubeconfigSecretStore:
    return FileKubeconfigSecretStore(str(secret_dir), master_key_provider)


@pytest.fixture()
def supervisor():
    sup = TaskSupervisor(max_workers=4, name="test")
    yield sup
    sup.shutdown(wait_for_tasks=True)


@pytest.fixture()
def cluster_manager() -> FakeClusterManager:
    return FakeClusterManager()


@pytest.fixture()
def kube_factory() -> FakeKubeFactory:
    return FakeKubeFactory()


@pytest.fixture()
def environment_service(db) -> EnvironmentService:
    return EnvironmentService(db)


@pytest.fixture()
def registry() -> ProvisionRegistry:
    return ProvisionRegistry()


def build_worker(environment_service, cluster_manager, secret_store, registry, kube_factory, **overrides):
    params = dict(max_attempts=3, backoff_initial=0.0, backoff_max=0.0, backoff_jitter=0.0)
    params.update(overrides)
    return ProvisioningWorker(
        environment_service=environment_service,
        cluster_manager=cluster_manager,
        secret_store=secret_store,
        registry=registry,
        client_factory=kube_factory,
        **params,
    )


@pytest.fixture()
def environment_orchestrator(
    db, environment_service, cluster_manager, secret_store, supervisor, registry, kube_factory
) -> EnvironmentOrchestrator:
    worker = build_worker(environment_service, cluster_manager, secret_store, registry, kube_factory)
    return EnvironmentOrchestrator(
        environment_service=environment_service,
        environment_user_service=EnvironmentUserService(db),
        cluster_manager=cluster_manager,
        secret_store=secret_store,
        supervisor=supervisor,
        worker=worker,
        registry=registry,
    )


@pytest.fixture()
def team_orchestrator(db, environment_service, secret_store, supervisor, kube_factory) -> TeamOrchestrator:
    provisioner = NamespaceRbacProvisioner(
        secret_store,
        client_factory=kube_factory,
        role_rules=[{"apiGroups": ["*"], "resources": ["*"], "verbs": ["*"]}],
    )
    return TeamOrchestrator(
        team_service=TeamService(db),
        environment_service=environment_service,
        provisioner=provisioner,
        supervisor=supervisor,
    )


@pytest.fixture()
def make_worker(environment_service, secret_store, registry):
    def _make(cluster_manager, kube_factory=None, **overrides):
        return build_worker(
            environment_service, cluster_manager, secret_store, registry,
            kube_factory or FakeKubeFactory(), **overrides
        )
    return _make
