"""Exception taxonomy for maintenance operations."""


class MaintenanceError(Exception):
    """Base class for all maintenance failures."""
    pass


class PreconditionError(MaintenanceError):
    """Raised before any state is touched (missing dir, marker, argument)."""
    pass


class FetchError(MaintenanceError):
    """Raised when a release cannot be downloaded or is invalid."""
    pass


class CommandError(MaintenanceError):
    """Raised when an external command exits non-zero."""

    def __init__(self, cmd, returncode: int, output: str = ""):
        self.cmd = list(cmd)
        self.returncode = returncode
        self.output = output
        message = f"Command failed (rc={returncode}): {' '.join(self.cmd)}"
        if output:
            message += f"\n{output.strip()}"
        super().__init__(message)


class HealthCheckError(MaintenanceError):
    """Raised when services do not report healthy within the retry budget."""
    pass


class StepError(MaintenanceError):
    """Wraps a failure of one named update step."""

    def __init__(self, step: str, cause: BaseException):
        self.step = step
        self.cause = cause
        super().__init__(f"{step}: {cause}")


class ArchiveMismatchError(PreconditionError):
    """Raised when an archive's top-level directory is not the app directory."""
    pass


class NoBackupsError(PreconditionError):
    """Raised when restore-latest finds no archives."""
    pass


class RestoreError(MaintenanceError):
    """Raised when extracting or starting a restored directory fails."""
    pass
