"""ingress-nginx controller installation.

The controller is installed from the upstream kind manifest only when its
namespace is missing, after which the step blocks until the controller
Deployment reports ``Available`` or the timeout elapses.
"""

from __future__ import annotations

import time
import typing as typ

import msgspec

from kind_env.errors import (
    CommandFailedError,
    CommandTimeoutError,
    IngressError,
    IngressTimeoutError,
)
from kind_env.executor import run_checked
from kind_env.k8s import kubectl, namespace_exists
from kind_env.logging import get_logger, log_debug, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

_KUBECTL_APPLY_TIMEOUT = 120
_KUBECTL_QUERY_TIMEOUT = 30
_MIN_QUERY_TIMEOUT = 1


class DeploymentCondition(msgspec.Struct):
    """A single entry of ``status.conditions`` on a Deployment."""

    type: str
    status: str
    reason: str | None = None


class DeploymentStatus(msgspec.Struct):
    """The part of a Deployment's status the readiness poll reads."""

    conditions: list[DeploymentCondition] = msgspec.field(default_factory=list)


class DeploymentDocument(msgspec.Struct):
    """Minimal view of ``kubectl get deployment -o json`` output."""

    status: DeploymentStatus = msgspec.field(default_factory=DeploymentStatus)


def is_available(document: DeploymentDocument) -> bool:
    """Return True when the Deployment's Available condition is True."""
    return any(
        condition.type == "Available" and condition.status == "True"
        for condition in document.status.conditions
    )


def _controller_available(
    cfg: Config, executor: CommandExecutor, timeout: float
) -> bool:
    try:
        result = executor.run(
            kubectl(
                cfg,
                "get",
                "deployment",
                cfg.ingress_deployment,
                "--namespace",
                cfg.ingress_namespace,
                "-o",
                "json",
            ),
            timeout=timeout,
        )
    except CommandTimeoutError:
        log_debug(logger, "Controller status query timed out; polling again.")
        return False
    if not result.ok:
        log_debug(logger, "Controller deployment not found yet.")
        return False
    try:
        document = msgspec.json.decode(result.stdout, type=DeploymentDocument)
    except msgspec.DecodeError:
        log_debug(logger, "Unreadable deployment status; polling again.")
        return False
    return is_available(document)


def wait_for_controller(
    cfg: Config,
    executor: CommandExecutor,
    *,
    sleep: cabc.Callable[[float], None] = time.sleep,
    monotonic: cabc.Callable[[], float] = time.monotonic,
) -> None:
    """Block until the controller is Available or ``cfg.ingress_timeout`` elapses.

    Raises
    ------
    IngressTimeoutError
        If the controller is not Available before the deadline.

    """
    deadline = monotonic() + cfg.ingress_timeout
    while True:
        query_timeout = min(
            _KUBECTL_QUERY_TIMEOUT, max(deadline - monotonic(), _MIN_QUERY_TIMEOUT)
        )
        if _controller_available(cfg, executor, query_timeout):
            log_info(logger, "Ingress controller is available.")
            return
        remaining = deadline - monotonic()
        if remaining <= 0:
            raise IngressTimeoutError(
                cfg.ingress_deployment, cfg.ingress_namespace, cfg.ingress_timeout
            )
        sleep(min(cfg.ingress_poll_interval, remaining))


def ensure_ingress_controller(
    cfg: Config,
    executor: CommandExecutor,
    *,
    sleep: cabc.Callable[[float], None] = time.sleep,
    monotonic: cabc.Callable[[], float] = time.monotonic,
) -> bool:
    """Install the ingress controller unless its namespace already exists.

    Parameters
    ----------
    cfg : Config
        Configuration with the controller namespace, manifest and timeout.
    executor : CommandExecutor
        Executor used to run kubectl.
    sleep : Callable[[float], None]
        Sleep function used between readiness polls.
    monotonic : Callable[[], float]
        Clock used for the readiness deadline.

    Returns
    -------
    bool
        True if the controller was installed by this call.

    Raises
    ------
    IngressError
        If the manifest cannot be applied.
    IngressTimeoutError
        If the controller does not become Available in time.

    """
    if namespace_exists(cfg, executor, cfg.ingress_namespace):
        log_info(logger, "Ingress controller already installed.")
        return False

    log_info(logger, "Installing NGINX Ingress Controller...")
    try:
        run_checked(
            executor,
            kubectl(cfg, "apply", "-f", cfg.ingress_manifest_url),
            timeout=_KUBECTL_APPLY_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"Failed to apply ingress controller manifest: {exc}"
        raise IngressError(msg) from exc

    log_info(
        logger,
        "Waiting up to %gs for %s/%s to become available...",
        cfg.ingress_timeout,
        cfg.ingress_namespace,
        cfg.ingress_deployment,
    )
    wait_for_controller(cfg, executor, sleep=sleep, monotonic=monotonic)
    return True
