"""
Domain errors raised by the orchestrators, the secret store and the cluster client.

Synchronous-path errors are translated to HTTP responses by the handlers in
app.main; background tasks catch everything and persist a terminal status.
"""


class EnvironmentNotFoundError(Exception):
    def __init__(self, environment_id: str):
        super().__init__(f"Environment not found: {environment_id}")
        self.environment_id = environment_id


class EnvironmentNameConflictError(Exception):
    def __init__(self, name: str):
        super().__init__(f"Environment name already in use: {name}")
        self.name = name


class TeamNameConflictError(Exception):
    def __init__(self, environment_id: str, name: str):
        super().__init__(f"Team name already in use in environment {environment_id}: {name}")
        self.environment_id = environment_id
        self.name = name


class EnvironmentNotReadyError(Exception):
    """Precondition failure: the environment must be READY."""

    def __init__(self, environment_id: str, status: str):
        super().__init__(f"Environment {environment_id} is not ready (status: {status})")
        self.environment_id = environment_id
        self.status = status


class InvalidRequesterError(ValueError):
    pass


class InvalidTeamNameError(ValueError):
    pass


class ProvisioningCancelledError(Exception):
    pass


class ClusterCommandError(Exception):
    """The cluster CLI exited non-zero or exceeded its timeout."""

    def __init__(self, command: list, output: str = "", timed_out: bool = False):
        reason = "timed out" if timed_out else "failed"
        message = f"Command {reason}: {' '.join(command)}"
        if output:
            message = f"{message}\n{output.strip()}"
        super().__init__(message)
        self.command = command
        self.output = output
        self.timed_out = timed_out


class ClusterValidationError(Exception):
    pass


class SecretStoreError(Exception):
    pass


class SecretNotFoundError(SecretStoreError):
    pass


class SecretIntegrityError(SecretStoreError):
    """Blob failed authentication: tampered, truncated, or encrypted with another key."""


class MasterKeyError(Exception):
    pass
