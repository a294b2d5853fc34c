"""High-level workflows sequencing the reconciliation steps."""

from __future__ import annotations

import enum
import time
import typing as typ

from kind_env.cluster import delete_cluster, ensure_cluster
from kind_env.deployment import apply_application
from kind_env.hosts import ensure_hosts_entry, remove_hosts_entry
from kind_env.image import build_and_push
from kind_env.ingress import ensure_ingress_controller
from kind_env.logging import get_logger, log_info
from kind_env.preflight import (
    BRING_UP_TOOLS,
    RENEW_TLS_TOOLS,
    TEAR_DOWN_TOOLS,
    require_tools,
)
from kind_env.registry import ensure_registry, remove_registry
from kind_env.tls import ensure_tls, utcnow

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    import datetime as dt

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)


class Workflow(enum.StrEnum):
    """Operator-selectable workflows."""

    UP = "up"
    CLEANUP = "cleanup"
    RESET = "reset"
    RENEW_TLS = "renew-tls"


def _print_success_banner(cfg: Config) -> None:
    """Print the success banner with the application URL and commands."""
    print()
    print("=" * 60)
    print("Local environment ready!")
    print(f"  URL: https://{cfg.hostname}")
    print(f"  Cluster: {cfg.cluster_name} (context {cfg.kube_context})")
    print(f"  Image: {cfg.local_image}")
    print()
    print("Commands:")
    print("  Renew TLS: kind-env renew-tls")
    print("  Reset:     kind-env reset")
    print("  Cleanup:   kind-env cleanup")
    print("=" * 60)


def bring_up(
    cfg: Config,
    executor: CommandExecutor,
    *,
    now: cabc.Callable[[], dt.datetime] = utcnow,
    sleep: cabc.Callable[[float], None] = time.sleep,
    monotonic: cabc.Callable[[], float] = time.monotonic,
) -> None:
    """Reconcile the environment to its fully running state.

    Steps run strictly in order and the first failure propagates; resources
    created by earlier steps are left in place for the next run to reuse.

    Parameters
    ----------
    cfg : Config
        Environment configuration.
    executor : CommandExecutor
        Executor used for every external command.
    now : Callable[[], datetime]
        Clock for certificate expiry checks.
    sleep : Callable[[float], None]
        Sleep function for the ingress readiness poll.
    monotonic : Callable[[], float]
        Clock for the ingress readiness deadline.

    Raises
    ------
    KindEnvError
        From the first step that fails.

    """
    require_tools(BRING_UP_TOOLS, executor)
    ensure_registry(cfg, executor)
    ensure_cluster(cfg, executor)
    build_and_push(cfg, executor)
    ensure_tls(cfg, executor, now=now)
    ensure_ingress_controller(cfg, executor, sleep=sleep, monotonic=monotonic)
    apply_application(cfg, executor)
    ensure_hosts_entry(cfg, executor)
    _print_success_banner(cfg)


def tear_down(cfg: Config, executor: CommandExecutor) -> None:
    """Delete the cluster, the registry container and the hosts entry.

    Each resource that is already gone is skipped.
    """
    require_tools(TEAR_DOWN_TOOLS, executor)
    delete_cluster(cfg, executor)
    remove_registry(cfg, executor)
    remove_hosts_entry(cfg, executor)
    log_info(logger, "Cleanup complete.")


def reset(
    cfg: Config,
    executor: CommandExecutor,
    *,
    now: cabc.Callable[[], dt.datetime] = utcnow,
    sleep: cabc.Callable[[float], None] = time.sleep,
    monotonic: cabc.Callable[[], float] = time.monotonic,
) -> None:
    """Tear the environment down and bring it up again."""
    tear_down(cfg, executor)
    bring_up(cfg, executor, now=now, sleep=sleep, monotonic=monotonic)


def renew_tls(
    cfg: Config,
    executor: CommandExecutor,
    *,
    now: cabc.Callable[[], dt.datetime] = utcnow,
) -> None:
    """Regenerate the certificate if due and republish the TLS Secret."""
    require_tools(RENEW_TLS_TOOLS, executor)
    ensure_tls(cfg, executor, now=now)
    log_info(logger, "TLS secret '%s' is current.", cfg.tls_secret_name)


def run_workflow(
    workflow: Workflow,
    cfg: Config,
    executor: CommandExecutor,
    *,
    now: cabc.Callable[[], dt.datetime] = utcnow,
    sleep: cabc.Callable[[float], None] = time.sleep,
    monotonic: cabc.Callable[[], float] = time.monotonic,
) -> None:
    """Dispatch ``workflow`` to its implementation."""
    match workflow:
        case Workflow.UP:
            bring_up(cfg, executor, now=now, sleep=sleep, monotonic=monotonic)
        case Workflow.CLEANUP:
            tear_down(cfg, executor)
        case Workflow.RESET:
            reset(cfg, executor, now=now, sleep=sleep, monotonic=monotonic)
        case Workflow.RENEW_TLS:
            renew_tls(cfg, executor, now=now)
