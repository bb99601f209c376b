import re
import logging
from typing import List

from app.core.exceptions import (
    EnvironmentNotFoundError,
    EnvironmentNotReadyError,
    InvalidTeamNameError,
)
from app.core.tasks import TaskSupervisor
from app.modules.environments.schemas import EnvironmentStatus
from app.modules.environments.service import EnvironmentService
from app.modules.secrets.store import KubeconfigRef
from app.modules.teams.rbac import NamespaceRbacProvisioner
from app.modules.teams.schemas import TeamResponse, TeamStatus
from app.modules.teams.service import TeamService

logger = logging.getLogger(__name__)

# Team names are used verbatim as namespace names (RFC 1123 label)
_NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
RESERVED_NAMESPACES = {"default", "kube-system", "kube-public", "kube-node-lease"}


def validate_team_name(name: str) -> None:
    if not name or len(name) > 63 or not _NAMESPACE_PATTERN.match(name):
        raise InvalidTeamNameError(
            "Team name must be a lowercase RFC 1123 label (a-z, 0-9, '-', at most 63 characters)"
        )
    if name in RESERVED_NAMESPACES:
        raise InvalidTeamNameError(f"Team name '{name}' is a reserved namespace")


class TeamOrchestrator:
    """Team onboarding inside a READY environment. Onboarding is fire-and-forget and not cancellable."""

    def __init__(
        self,
        team_service: TeamService,
        environment_service: EnvironmentService,
        provisioner: NamespaceRbacProvisioner,
        supervisor: TaskSupervisor,
    ):
        self.team_service = team_service
        self.environment_service = environment_service
        self.provisioner = provisioner
        self.supervisor = supervisor

    def create_team(self, environment_id: str, team_name: str) -> TeamResponse:
        validate_team_name(team_name)
        environment = self.environment_service.get_environment_by_id(environment_id)
        if environment is None:
            raise EnvironmentNotFoundError(environment_id)
        if environment.status != EnvironmentStatus.READY or not environment.kubeconfig_ref:
            raise EnvironmentNotReadyError(environment_id, environment.status.value)

        team = self.team_service.create_team(environment_id, team_name)
        kubeconfig_ref = KubeconfigRef.parse(environment.kubeconfig_ref)
        try:
            self.supervisor.submit(
                self.onboard, team.id, kubeconfig_ref, team_name, task_name=f"onboard-{team.id}"
            )
        except RuntimeError as e:
            # Supervisor already shut down
            self.team_service.update_team_status(team.id, TeamStatus.FAILED, error_message=str(e))
            raise
        logger.info(f"Team {team_name} accepted for onboarding in environment {environment_id}")
        return team

    def onboard(self, team_id: str, kubeconfig_ref: KubeconfigRef, team_name: str) -> TeamStatus:
        try:
            self.provisioner.setup(kubeconfig_ref, team_name)
            status, error_message = TeamStatus.READY, None
            logger.info(f"Team {team_name} ({team_id}) onboarded")
        except Exception as e:
            status, error_message = TeamStatus.FAILED, str(e)
            logger.error(f"Team onboarding failed for {team_name} ({team_id}): {str(e)}")
        try:
            self.team_service.update_team_status(team_id, status, error_message=error_message)
        except Exception as e:
            logger.error(f"Failed to update team {team_id} status: {str(e)}")
        return status

    def list_teams(self, environment_id: str) -> List[TeamResponse]:
        return self.team_service.list_teams_by_environment(environment_id)
