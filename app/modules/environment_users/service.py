from supabase import Client
from app.core.exceptions import InvalidRequesterError
from app.modules.environment_users.schemas import EnvironmentRole, EnvironmentUserResponse
from typing import List
import logging

logger = logging.getLogger(__name__)


class EnvironmentUserService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_binding(self, environment_id: str, user_id: str, role: EnvironmentRole) -> EnvironmentUserResponse:
        """Bind a user to an environment. (environment_id, user_id) is unique."""
        if not user_id:
            raise InvalidRequesterError("An environment binding requires a user")
        try:
            result = self.supabase.table("environment_users").insert({
                "environment_id": environment_id,
                "user_id": user_id,
                "role": role.value,
            }).execute()
        except Exception as e:
            logger.error(f"Error binding user {user_id} to environment {environment_id}: {str(e)}")
            raise

        if not result.data:
            raise RuntimeError("Failed to create environment binding")
        return EnvironmentUserResponse(**result.data[0])

    def list_by_user(self, user_id: str) -> List[EnvironmentUserResponse]:
        result = self.supabase.table("environment_users")\
            .select("*")\
            .eq("user_id", user_id)\
            .execute()
        return [EnvironmentUserResponse(**row) for row in (result.data or [])]
