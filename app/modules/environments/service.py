from supabase import Client
from app.database.supabase_client import is_unique_violation
from app.core.exceptions import EnvironmentNameConflictError
from app.modules.environments.schemas import EnvironmentCreate, EnvironmentResponse, EnvironmentStatus
from typing import List, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EnvironmentService:
    """Persistence for the environments table. Absence is reported as None, never raised."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_environment(self, environment_data: EnvironmentCreate) -> EnvironmentResponse:
        """Insert a new environment in CREATING status. Names are globally unique."""
        if self.get_environment_by_name(environment_data.name):
            raise EnvironmentNameConflictError(environment_data.name)
        try:
            result = self.supabase.table("environments").insert({
                "name": environment_data.name,
                "description": environment_data.description,
                "status": EnvironmentStatus.CREATING.value,
                "kubeconfig_ref": None,
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                raise EnvironmentNameConflictError(environment_data.name)
            logger.error(f"Error creating environment: {str(e)}")
            raise

        if not result.data:
            raise RuntimeError("Failed to create environment")
        return EnvironmentResponse(**result.data[0])

    def get_environment_by_id(self, environment_id: str) -> Optional[EnvironmentResponse]:
        result = self.supabase.table("environments")\
            .select("*")\
            .eq("id", environment_id)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            return None
        return EnvironmentResponse(**result.data)

    def get_environment_by_name(self, name: str) -> Optional[EnvironmentResponse]:
        result = self.supabase.table("environments")\
            .select("*")\
            .eq("name", name)\
            .maybe_single()\
            .execute()
        if not result or not result.data:
            return None
        return EnvironmentResponse(**result.data)

    def list_environments(self) -> List[EnvironmentResponse]:
        result = self.supabase.table("environments")\
            .select("*")\
            .order("created_at", desc=True)\
            .execute()
        return [EnvironmentResponse(**env) for env in (result.data or [])]

    def update_environment_status(
        self,
        environment_id: str,
        status: EnvironmentStatus,
        kubeconfig_ref: Optional[str] = None,
        error_message: Optional[str] = None
    ) -> Optional[EnvironmentResponse]:
        """
        Set status. kubeconfig_ref is written only together with READY and is
        cleared for every other status, so a reference never outlives a failure.
        """
        update_data = {"status": status.value, "updated_at": _now()}
        if status == EnvironmentStatus.READY:
            if not kubeconfig_ref:
                raise ValueError("A ready environment requires a kubeconfig reference")
            update_data["kubeconfig_ref"] = kubeconfig_ref
            update_data["error_message"] = None
        elif status in (EnvironmentStatus.FAILED, EnvironmentStatus.CANCELLED):
            update_data["kubeconfig_ref"] = None
        if error_message:
            update_data["error_message"] = error_message[:2000]

        try:
            result = self.supabase.table("environments")\
                .update(update_data)\
                .eq("id", environment_id)\
                .execute()
        except Exception as e:
            logger.error(f"Error updating environment {environment_id}: {str(e)}")
            raise

        if result.data:
            return EnvironmentResponse(**result.data[0])
        # Empty response can happen (e.g. PostgREST config); assume update succeeded
        return self.get_environment_by_id(environment_id)

    def delete_environment(self, environment_id: str) -> bool:
        result = self.supabase.table("environments")\
            .delete()\
            .eq("id", environment_id)\
            .execute()
        return bool(result.data)
