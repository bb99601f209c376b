from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional, List


class Settings(BaseSettings):
    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_role_key: Optional[str] = None  # Used by background workers (RLS bypass)

    # AWS S3 (will read from uppercase env vars automatically)
    aws_access_key_id: Optional[str] = None
    aws_secret_access_key: Optional[str] = None
    aws_region: str = "us-east-1"
    s3_bucket_name: Optional[str] = None

    # Kubeconfig secret store
    secret_store_backend: str = "file"  # file | s3
    secret_store_dir: str = "/var/lib/paas/secrets"
    secret_store_s3_prefix: str = "kubeconfigs"
    paas_master_key: Optional[str] = None  # 16 or 32 bytes, raw or "base64:..."

    # k3d cluster CLI
    k3d_binary: str = "k3d"
    cluster_create_timeout_seconds: int = 300
    kubeconfig_timeout_seconds: int = 120
    cluster_delete_timeout_seconds: int = 300

    # Provisioning retry policy
    provision_max_attempts: int = 3
    provision_backoff_initial_seconds: float = 1.0
    provision_backoff_max_seconds: float = 10.0
    provision_backoff_jitter_seconds: float = 0.5
    background_max_workers: int = 8
    onboarding_max_workers: int = 4

    # Team RBAC (comma-separated lists)
    team_service_account_name: str = "team-sa"
    team_role_name: str = "team-admin"
    team_role_binding_name: str = "team-admin-binding"
    team_role_api_groups: str = "*"
    team_role_resources: str = "*"
    team_role_verbs: str = "*"

    # App
    app_name: str = "kubenv-backend"
    debug: bool = False
    environment: str = "development"  # development | staging | production
    log_level: str = "INFO"
    cors_origins: str = "http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173"
    rate_limit: str = "100/minute"  # slowapi format, e.g. "100/minute"

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def get_cors_origins_list(self) -> List[str]:
        return _split_csv(self.cors_origins)

    def get_team_role_rules(self) -> List[dict]:
        """Policy rules granted to every team's service account inside its namespace."""
        return [{
            "apiGroups": _split_csv(self.team_role_api_groups),
            "resources": _split_csv(self.team_role_resources),
            "verbs": _split_csv(self.team_role_verbs),
        }]

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        env_prefix="",  # No prefix needed
        extra="ignore"
    )


def _split_csv(value: str) -> List[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


settings = Settings()
