from fastapi import APIRouter, Depends
from app.core.dependencies import get_current_user
from app.core.services import get_environment_orchestrator
from app.modules.environment_users.schemas import EnvironmentUserResponse
from app.modules.environments.orchestrator import EnvironmentOrchestrator
from typing import Dict, List

router = APIRouter(prefix="/environment-users", tags=["environment-users"])


@router.get("", response_model=List[EnvironmentUserResponse])
async def list_my_environment_bindings(
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    """Environments the current user is bound to, with their role"""
    return orchestrator.find_bindings_for_user(user_data["id"])
