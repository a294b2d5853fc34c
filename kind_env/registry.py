"""Local image registry container lifecycle.

The registry is a ``registry:2`` container with an always-restart policy,
published on a fixed host port so both the host (for ``docker push``) and the
kind nodes (through the registry mirror) can reach it.
"""

from __future__ import annotations

import enum
import typing as typ

from kind_env.config import DeploymentTarget
from kind_env.errors import CommandFailedError, RegistryError
from kind_env.executor import run_checked
from kind_env.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

_DOCKER_TIMEOUT = 120

# Port the registry image listens on inside the container
REGISTRY_CONTAINER_PORT = 5000

# stderr markers docker prints when the inspected container does not exist
_MISSING_CONTAINER_MARKERS = ("No such container", "No such object")


def is_missing_container(stderr: str) -> bool:
    """Return True when docker reported that the container does not exist."""
    return any(marker in stderr for marker in _MISSING_CONTAINER_MARKERS)


class ContainerState(enum.StrEnum):
    """Observed state of a named container."""

    ABSENT = "absent"
    STOPPED = "stopped"
    RUNNING = "running"


def container_state(executor: CommandExecutor, name: str) -> ContainerState:
    """Inspect a container by exact name.

    Parameters
    ----------
    executor : CommandExecutor
        Executor used to run docker.
    name : str
        Container name.

    Returns
    -------
    ContainerState
        ``ABSENT`` when docker knows no such container.

    Raises
    ------
    RegistryError
        If docker fails for any other reason, such as an unreachable daemon.

    """
    result = executor.run(
        ["docker", "inspect", "--type", "container", "-f", "{{.State.Running}}", name],
        timeout=_DOCKER_TIMEOUT,
    )
    if not result.ok:
        if is_missing_container(result.stderr):
            return ContainerState.ABSENT
        msg = f"Failed to inspect container '{name}': {result.stderr.strip()}"
        raise RegistryError(msg)
    if result.stdout.strip().lower() == "true":
        return ContainerState.RUNNING
    return ContainerState.STOPPED


def ensure_registry(cfg: Config, executor: CommandExecutor) -> bool:
    """Ensure the local registry container is running.

    Returns
    -------
    bool
        True if a container was started or created by this call.

    Raises
    ------
    RegistryError
        If the container cannot be started.

    """
    if cfg.target is DeploymentTarget.MANAGED_CLOUD:
        log_info(logger, "Using managed registry %s; no local registry.", cfg.registry)
        return False

    state = container_state(executor, cfg.registry_name)
    try:
        if state is ContainerState.RUNNING:
            log_info(logger, "Registry '%s' already running.", cfg.registry_name)
            return False
        if state is ContainerState.STOPPED:
            log_info(logger, "Starting stopped registry '%s'...", cfg.registry_name)
            run_checked(
                executor,
                ["docker", "start", cfg.registry_name],
                timeout=_DOCKER_TIMEOUT,
            )
            return True

        log_info(
            logger,
            "Starting local registry '%s' on port %d...",
            cfg.registry_name,
            cfg.registry_port,
        )
        run_checked(
            executor,
            [
                "docker",
                "run",
                "-d",
                "--restart=always",
                "-p",
                f"{cfg.registry_port}:{REGISTRY_CONTAINER_PORT}",
                "--name",
                cfg.registry_name,
                cfg.registry_image,
            ],
            timeout=_DOCKER_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"Failed to start registry '{cfg.registry_name}': {exc}"
        raise RegistryError(msg) from exc
    return True


def remove_registry(cfg: Config, executor: CommandExecutor) -> bool:
    """Force-remove the registry container if it exists.

    Returns
    -------
    bool
        True if a container was removed.

    Raises
    ------
    RegistryError
        If docker cannot inspect or remove the container.

    """
    if container_state(executor, cfg.registry_name) is ContainerState.ABSENT:
        log_info(logger, "Registry '%s' does not exist.", cfg.registry_name)
        return False
    log_info(logger, "Removing registry '%s'...", cfg.registry_name)
    try:
        run_checked(
            executor, ["docker", "rm", "-f", cfg.registry_name], timeout=_DOCKER_TIMEOUT
        )
    except CommandFailedError as exc:
        msg = f"Failed to remove registry '{cfg.registry_name}': {exc}"
        raise RegistryError(msg) from exc
    return True
