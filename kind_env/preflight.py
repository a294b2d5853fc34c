"""Preflight verification of the external tools a workflow needs."""

from __future__ import annotations

import typing as typ

from kind_env.errors import ExecutableNotFoundError
from kind_env.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

BRING_UP_TOOLS: tuple[str, ...] = ("docker", "kind", "kubectl", "openssl")
TEAR_DOWN_TOOLS: tuple[str, ...] = ("docker", "kind")
RENEW_TLS_TOOLS: tuple[str, ...] = ("kubectl", "openssl")


def require_tools(tools: cabc.Iterable[str], executor: CommandExecutor) -> None:
    """Verify every tool is available on the command path.

    Parameters
    ----------
    tools : Iterable[str]
        Executable names, checked in order.
    executor : CommandExecutor
        Executor whose ``which`` resolves names.

    Raises
    ------
    ExecutableNotFoundError
        For the first tool that cannot be resolved.

    """
    log_info(logger, "Checking required tools...")
    for name in tools:
        if executor.which(name) is None:
            raise ExecutableNotFoundError(name)
