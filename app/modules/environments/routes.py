from fastapi import APIRouter, Depends, HTTPException
from app.core.dependencies import get_current_user
from app.core.services import get_environment_orchestrator
from app.modules.environments.orchestrator import EnvironmentOrchestrator
from app.modules.environments.schemas import (
    CANCELLABLE_STATUSES, EnvironmentCreate, EnvironmentResponse, EnvironmentStatus
)
from typing import Dict, List

router = APIRouter(prefix="/environments", tags=["environments"])


def _get_or_404(orchestrator: EnvironmentOrchestrator, environment_id: str) -> EnvironmentResponse:
    environment = orchestrator.find_by_id(environment_id)
    if environment is None:
        raise HTTPException(status_code=404, detail="Environment not found")
    return environment


@router.post("", response_model=EnvironmentResponse, status_code=201)
async def create_environment(
    environment_data: EnvironmentCreate,
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    """Create an environment; the cluster is provisioned in the background. Poll GET for status."""
    return orchestrator.create(environment_data, user_data["id"])


@router.get("", response_model=List[EnvironmentResponse])
async def list_environments(
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    return orchestrator.find_all()


@router.get("/{environment_id}", response_model=EnvironmentResponse)
async def get_environment(
    environment_id: str,
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    return _get_or_404(orchestrator, environment_id)


@router.post("/{environment_id}/cancel", response_model=EnvironmentResponse)
async def cancel_provisioning(
    environment_id: str,
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    """Request cancellation of in-flight provisioning. The status turns cancelled once the task notices."""
    environment = _get_or_404(orchestrator, environment_id)
    if environment.status not in CANCELLABLE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel environment with status '{environment.status.value}'"
        )
    orchestrator.cancel_provision(environment_id)
    return _get_or_404(orchestrator, environment_id)


# Sync route: the k3d teardown blocks, so FastAPI runs it in its threadpool
@router.delete("/{environment_id}", status_code=204)
def delete_environment(
    environment_id: str,
    user_data: Dict = Depends(get_current_user),
    orchestrator: EnvironmentOrchestrator = Depends(get_environment_orchestrator)
):
    """Delete the environment, its cluster and its stored kubeconfig."""
    environment = _get_or_404(orchestrator, environment_id)
    if environment.status in CANCELLABLE_STATUSES or environment.status == EnvironmentStatus.DELETING:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot delete environment with status '{environment.status.value}'. Cancel provisioning first."
        )
    orchestrator.delete(environment_id)
    return None
