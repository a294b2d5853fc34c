"""Hosts file entry for the application hostname.

The hosts file is read directly (it is world-readable) but written through
``cfg.privilege_command`` because it is normally owned by root. Appends go
through ``tee -a`` and rewrites through ``tee`` with the new content on
standard input, so no shell is ever involved.
"""

from __future__ import annotations

import typing as typ

from kind_env.errors import CommandFailedError, HostsFileError
from kind_env.executor import run_checked
from kind_env.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from pathlib import Path

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

_WRITE_TIMEOUT = 60
BACKUP_SUFFIX = ".bak"


def _names(line: str) -> list[str]:
    """Return the host names mapped by a hosts file line."""
    content = line.split("#", 1)[0].split()
    return content[1:] if len(content) > 1 else []


def has_entry(text: str, hostname: str) -> bool:
    """Report whether ``hostname`` is mapped by any non-comment line."""
    return any(hostname in _names(line) for line in text.splitlines())


def without_entry(text: str, hostname: str) -> str:
    """Return ``text`` with every line mapping ``hostname`` removed."""
    kept = [line for line in text.splitlines() if hostname not in _names(line)]
    return "\n".join(kept) + "\n" if kept else ""


def _read(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        msg = f"Cannot read hosts file {path}: {exc}"
        raise HostsFileError(msg) from exc


def ensure_hosts_entry(cfg: Config, executor: CommandExecutor) -> bool:
    """Map ``cfg.hostname`` to the loopback address unless already mapped.

    Parameters
    ----------
    cfg : Config
        Configuration naming the hosts file, hostname and privilege command.
    executor : CommandExecutor
        Executor used to run the privileged ``tee``.

    Returns
    -------
    bool
        True if an entry was appended by this call.

    Raises
    ------
    HostsFileError
        If the hosts file cannot be read or appended to.

    """
    current = _read(cfg.hosts_file) or ""
    if has_entry(current, cfg.hostname):
        log_info(logger, "Hosts entry for %s already exists.", cfg.hostname)
        return False

    log_info(logger, "Adding %s to %s...", cfg.hostname, cfg.hosts_file)
    line = f"{cfg.loopback_address} {cfg.hostname}\n"
    if current and not current.endswith("\n"):
        line = f"\n{line}"
    try:
        run_checked(
            executor,
            [*cfg.privilege_command, "tee", "-a", str(cfg.hosts_file)],
            input_text=line,
            timeout=_WRITE_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"Failed to append to {cfg.hosts_file}: {exc}"
        raise HostsFileError(msg) from exc
    return True


def remove_hosts_entry(cfg: Config, executor: CommandExecutor) -> bool:
    """Strip every line mapping ``cfg.hostname``, keeping a backup copy.

    Returns
    -------
    bool
        True if the hosts file was rewritten by this call.

    Raises
    ------
    HostsFileError
        If the backup or the rewrite fails.

    """
    current = _read(cfg.hosts_file)
    if current is None or not has_entry(current, cfg.hostname):
        log_info(logger, "No hosts entry for %s.", cfg.hostname)
        return False

    backup = cfg.hosts_file.with_name(cfg.hosts_file.name + BACKUP_SUFFIX)
    log_info(logger, "Removing %s from %s...", cfg.hostname, cfg.hosts_file)
    try:
        run_checked(
            executor,
            [*cfg.privilege_command, "cp", str(cfg.hosts_file), str(backup)],
            timeout=_WRITE_TIMEOUT,
        )
        run_checked(
            executor,
            [*cfg.privilege_command, "tee", str(cfg.hosts_file)],
            input_text=without_entry(current, cfg.hostname),
            timeout=_WRITE_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"Failed to rewrite {cfg.hosts_file}: {exc}"
        raise HostsFileError(msg) from exc
    return True
