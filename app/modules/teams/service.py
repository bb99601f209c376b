from supabase import Client
from app.core.exceptions import TeamNameConflictError
from app.database.supabase_client import is_unique_violation
from app.modules.teams.schemas import TeamResponse, TeamStatus
from typing import List, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class TeamService:
    def __init__(self, supabase: Client):
        self.supabase = supabase

    def create_team(self, environment_id: str, name: str) -> TeamResponse:
        """Insert a team in CREATING status. Names are unique per environment."""
        try:
            result = self.supabase.table("teams").insert({
                "name": name,
                "environment_id": environment_id,
                "status": TeamStatus.CREATING.value,
            }).execute()
        except Exception as e:
            if is_unique_violation(e):
                raise TeamNameConflictError(environment_id, name)
            logger.error(f"Error creating team: {str(e)}")
            raise

        if not result.data:
            raise RuntimeError("Failed to create team")
        return TeamResponse(**result.data[0])

    def list_teams_by_environment(self, environment_id: str) -> List[TeamResponse]:
        result = self.supabase.table("teams")\
            .select("*")\
            .eq("environment_id", environment_id)\
            .order("created_at", desc=True)\
            .execute()
        return [TeamResponse(**team) for team in (result.data or [])]

    def update_team_status(self, team_id: str, status: TeamStatus, error_message: Optional[str] = None) -> None:
        update_data = {"status": status.value, "updated_at": datetime.now(timezone.utc).isoformat()}
        if error_message:
            update_data["error_message"] = error_message[:2000]
        self.supabase.table("teams")\
            .update(update_data)\
            .eq("id", team_id)\
            .execute()
