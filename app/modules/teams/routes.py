from fastapi import APIRouter, Depends, HTTPException
from app.core.dependencies import get_current_user
from app.core.services import get_environment_orchestrator, get_team_orchestrator
from app.modules.environments.orchestrator import EnvironmentOrchestrator
from app.modules.teams.orchestrator import TeamOrchestrator
from app.modules.teams.schemas import TeamCreate, TeamResponse
from typing import Dict, List

router = APIRouter(prefix="/environments/{environment_id}/teams", tags=["teams"])


@router.post("", response_model=TeamResponse, status_code=201)
async def create_team(
    environment_id: str,
    team_data: TeamCreate,
    user_data: Dict = Depends(get_current_user),
    orchestrator: TeamOrchestrator = Depends(get_team_orchestrator)
):
    """Create a team (namespace + RBAC) in a ready environment. Onboarding runs in the background."""
    return orchestrator.create_team(environment_id, team_data.name)


@router.get("", response_model=List[TeamResponse])
async def list_teams(
    environment_id: str,
    user_data: Dict = Depends(get_current_user),
    orchestrator: TeamOrchestrator = Depends(get_team_orchestrator),
    environments: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    if environments.find_by_id(environment_id) is None:
        raise HTTPException(status_code=404, detail="Environment not found")
    return orchestrator.list_teams(environment_id)
