"""Command execution for the reconciliation steps.

Every step reaches docker, kind, kubectl, openssl and friends through a
``CommandExecutor`` rather than calling :mod:`subprocess` directly. The
production implementation is ``SubprocessExecutor``; tests substitute an
in-memory executor that simulates the external tools.

Examples
--------
Run a query and branch on its exit status:

    executor = SubprocessExecutor()
    result = executor.run(["kind", "get", "clusters"])
    if result.ok:
        print(result.stdout)

Run a command that must succeed:

    run_checked(executor, ["docker", "push", "localhost:5000/app:latest"])

"""

from __future__ import annotations

import dataclasses as dc
import shutil
import subprocess
import typing as typ

from kind_env.errors import (
    CommandFailedError,
    CommandTimeoutError,
    ExecutableNotFoundError,
)
from kind_env.logging import get_logger, log_debug

if typ.TYPE_CHECKING:
    import collections.abc as cabc
    from pathlib import Path

logger = get_logger(__name__)


@dc.dataclass(frozen=True, slots=True)
class CommandResult:
    """Outcome of a single external command.

    Attributes
    ----------
    args
        The argv that was executed.
    returncode
        Process exit status.
    stdout
        Captured standard output; empty when output was streamed.
    stderr
        Captured standard error; empty when output was streamed.

    """

    args: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        """Return True when the command exited with status zero."""
        return self.returncode == 0


class CommandExecutor(typ.Protocol):
    """Capability to run named external commands."""

    def run(
        self,
        args: cabc.Sequence[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
        stream: bool = False,
    ) -> CommandResult:
        """Run ``args`` and report its exit status and output."""
        ...

    def which(self, name: str) -> str | None:
        """Return the resolved path of ``name`` or None when it is missing."""
        ...


class SubprocessExecutor:
    """Run commands as child processes of the current interpreter.

    Parameters
    ----------
    cwd : Path | None
        Working directory for every command. Defaults to the current one.
    env : dict[str, str] | None
        Environment for every command. Defaults to ``os.environ``.

    """

    def __init__(
        self, cwd: Path | None = None, env: dict[str, str] | None = None
    ) -> None:
        """Store the working directory and environment for child processes."""
        self.cwd = cwd
        self.env = env

    def run(
        self,
        args: cabc.Sequence[str],
        *,
        input_text: str | None = None,
        timeout: float | None = None,
        stream: bool = False,
    ) -> CommandResult:
        """Execute a command and return its structured result.

        Parameters
        ----------
        args : Sequence[str]
            Command and arguments. Never passed through a shell.
        input_text : str | None
            Text written to the process's standard input.
        timeout : float | None
            Maximum run time in seconds.
        stream : bool
            Let output go straight to the terminal instead of capturing it.
            Used for long builds so the operator sees progress.

        Returns
        -------
        CommandResult
            Exit status and captured output.

        Raises
        ------
        ExecutableNotFoundError
            If the program cannot be found.
        CommandTimeoutError
            If the timeout elapses.

        """
        argv = [str(arg) for arg in args]
        log_debug(logger, "Running %s", " ".join(argv))
        try:
            # S603: argv lists only, shell=False
            completed = subprocess.run(  # noqa: S603
                argv,
                input=input_text,
                capture_output=not stream,
                text=True,
                check=False,
                cwd=self.cwd,
                env=self.env,
                timeout=timeout,
            )
        except FileNotFoundError as exc:
            raise ExecutableNotFoundError(argv[0]) from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(argv, timeout or 0) from exc

        return CommandResult(
            args=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )

    def which(self, name: str) -> str | None:
        """Resolve ``name`` on the command path."""
        path = None if self.env is None else self.env.get("PATH")
        return shutil.which(name, path=path)


def run_checked(
    executor: CommandExecutor,
    args: cabc.Sequence[str],
    *,
    input_text: str | None = None,
    timeout: float | None = None,
    stream: bool = False,
) -> CommandResult:
    """Run a command that must succeed.

    Raises
    ------
    CommandFailedError
        If the command exits with a non-zero status.

    """
    result = executor.run(args, input_text=input_text, timeout=timeout, stream=stream)
    if not result.ok:
        raise CommandFailedError(result.args, result.returncode, result.stderr)
    return result
