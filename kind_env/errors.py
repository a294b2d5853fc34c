"""Exceptions raised while reconciling the local kind environment.

Every failure a workflow can report derives from ``KindEnvError`` so the CLI
has a single catch point. Component errors wrap the underlying
``CommandFailedError`` with ``raise ... from`` to keep the failing command
visible in tracebacks.
"""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

# Number of stderr characters quoted in command failure messages
_STDERR_PREVIEW_LIMIT = 400


class KindEnvError(Exception):
    """Base exception for all kind_env errors."""


class ConfigurationError(KindEnvError):
    """Raised when a configuration value cannot be used."""


class ExecutableNotFoundError(KindEnvError):
    """Required CLI tool is not installed."""

    def __init__(self, name: str) -> None:
        """Initialise with the missing executable name."""
        self.name = name
        super().__init__(f"Required executable '{name}' not found in PATH")


class CommandFailedError(KindEnvError):
    """Raised when an external command exits with a non-zero status.

    Attributes
    ----------
    args_list
        The argv that was executed.
    returncode
        Exit status reported by the process.
    stderr
        Captured standard error, if any.

    """

    def __init__(
        self, args: cabc.Sequence[str], returncode: int, stderr: str = ""
    ) -> None:
        """Initialise with the failing argv, exit status and stderr."""
        self.args_list = tuple(args)
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command '{' '.join(self.args_list)}' exited with {returncode}"
        detail = stderr.strip()
        if detail:
            message = f"{message}: {detail[:_STDERR_PREVIEW_LIMIT]}"
        super().__init__(message)


class CommandTimeoutError(KindEnvError):
    """Raised when an external command exceeds its timeout."""

    def __init__(self, args: cabc.Sequence[str], timeout: float) -> None:
        """Initialise with the argv and the timeout that elapsed."""
        self.args_list = tuple(args)
        self.timeout = timeout
        super().__init__(
            f"Command '{' '.join(self.args_list)}' timed out after {timeout} seconds"
        )


class RegistryError(KindEnvError):
    """Raised when the local image registry cannot be started."""


class ClusterError(KindEnvError):
    """Raised when the kind cluster cannot be created or wired to the registry."""


class ImageBuildError(KindEnvError):
    """Raised when the application image cannot be built or pushed."""


class CertificateError(KindEnvError):
    """Raised when the TLS key pair cannot be generated or published."""


class DeploymentError(KindEnvError):
    """Raised when the application manifests cannot be applied."""


class IngressError(KindEnvError):
    """Raised when the ingress controller cannot be installed."""


class IngressTimeoutError(IngressError):
    """Raised when the ingress controller does not become available in time."""

    def __init__(self, deployment: str, namespace: str, timeout: float) -> None:
        """Initialise with the deployment that never became available."""
        self.deployment = deployment
        self.namespace = namespace
        self.timeout = timeout
        super().__init__(
            f"Deployment '{namespace}/{deployment}' was not Available "
            f"after {timeout:g} seconds"
        )


class HostsFileError(KindEnvError):
    """Raised when the hosts file cannot be updated."""
