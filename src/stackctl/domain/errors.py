"""Exception taxonomy for stackctl.

Every error carries a stable ``code`` (surfaced in ``ServiceError.code``)
and the CLI ``exit_code`` for its category:

  ConfigError / NamingError        -> 1
  ContainerRuntimeError / Project  -> 2
  DispatchError                    -> 2
  LockError                        -> 4

Exit code 3 is reserved for a dispatched command that exited nonzero,
which is an outcome rather than an error.
"""

from __future__ import annotations

from typing import Any

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_RUNTIME = 2
EXIT_COMMAND_FAILED = 3
EXIT_LOCKED = 4


class StackctlError(Exception):
    """Base class for all stackctl errors."""

    code = "STACKCTL_ERROR"
    exit_code = EXIT_RUNTIME

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: dict[str, Any] = detail


# --- Configuration ---------------------------------------------------------


class ConfigError(StackctlError):
    code = "CONFIG_ERROR"
    exit_code = EXIT_CONFIG


class MissingEnvFileError(ConfigError):
    code = "MISSING_ENV_FILE"


class MalformedLineError(ConfigError):
    code = "MALFORMED_LINE"


class MissingProjectNameError(ConfigError):
    code = "MISSING_PROJECT_NAME"


class LayerNotFoundError(ConfigError):
    code = "LAYER_NOT_FOUND"


class ConflictingTypeError(ConfigError):
    code = "CONFLICTING_TYPE"


class InvalidLayerError(ConfigError):
    """A layer file is not valid YAML or its top level is not a mapping."""

    code = "INVALID_LAYER"


class DependencyCycleError(ConfigError):
    code = "DEPENDENCY_CYCLE"


# --- Naming ----------------------------------------------------------------


class NamingError(StackctlError):
    code = "NAMING_ERROR"
    exit_code = EXIT_CONFIG


class UnknownServiceError(NamingError):
    code = "UNKNOWN_SERVICE"


class InvalidServiceNameError(NamingError):
    code = "INVALID_SERVICE_NAME"


class DuplicateContainerNameError(NamingError):
    code = "DUPLICATE_CONTAINER_NAME"


# --- Container runtime -----------------------------------------------------


class ContainerRuntimeError(StackctlError):
    """Failure reported by, or while talking to, the container runtime."""

    code = "RUNTIME_ERROR"
    exit_code = EXIT_RUNTIME


class DaemonUnavailableError(ContainerRuntimeError):
    """The runtime daemon could not be reached. Transient, retried."""

    code = "DAEMON_UNAVAILABLE"


class StartFailedError(ContainerRuntimeError):
    code = "START_FAILED"


class StopFailedError(ContainerRuntimeError):
    code = "STOP_FAILED"


class ModeMismatchError(ContainerRuntimeError):
    code = "MODE_MISMATCH"


# --- Project registry ------------------------------------------------------


class ProjectError(StackctlError):
    code = "PROJECT_ERROR"
    exit_code = EXIT_RUNTIME


class ProjectAlreadyActiveError(ProjectError):
    code = "ALREADY_ACTIVE"


class ProjectNotActiveError(ProjectError):
    code = "NOT_ACTIVE"


# --- Dispatch --------------------------------------------------------------


class DispatchError(StackctlError):
    code = "DISPATCH_ERROR"
    exit_code = EXIT_RUNTIME


class ContainerNotRunningError(DispatchError):
    code = "CONTAINER_NOT_RUNNING"


class LaunchFailedError(DispatchError):
    code = "LAUNCH_FAILED"


class DispatchTimeoutError(DispatchError):
    code = "DISPATCH_TIMEOUT"


# --- Locks -----------------------------------------------------------------


class LockError(StackctlError):
    code = "LOCK_ERROR"
    exit_code = EXIT_LOCKED


class LockHeldError(LockError):
    """Another process holds the project lock.

    ``detail`` carries ``pid``, ``host``, ``acquired_at`` and ``stale``.
    """

    code = "LOCK_HELD"
