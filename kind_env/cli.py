"""Command-line entry point for the local kind environment.

Usage:
    kind-env              # Bring the environment up (default)
    kind-env up           # Same as above
    kind-env cleanup      # Delete cluster, registry and hosts entry
    kind-env reset        # Cleanup, then up
    kind-env renew-tls    # Renew the TLS certificate if due

Environment variables:
    KIND_ENV_CLUSTER, KIND_ENV_NAMESPACE, KIND_ENV_HOSTNAME,
    KIND_ENV_REGISTRY_PORT, KIND_ENV_REGISTRY_ADDRESS, KIND_ENV_TLS_DIR,
    KIND_ENV_HOSTS_FILE, KIND_ENV_PRIVILEGE_COMMAND - see ``Config.from_env``
    KIND_ENV_LOG_LEVEL - Log level (default: INFO)
"""

from __future__ import annotations

import os
import sys

from cyclopts import App

from kind_env import __version__
from kind_env.config import Config
from kind_env.errors import KindEnvError
from kind_env.executor import SubprocessExecutor
from kind_env.logging import (
    configure_logging,
    get_logger,
    log_exception,
    log_warning,
)
from kind_env.orchestration import Workflow, run_workflow

logger = get_logger(__name__)

app = App(
    name="kind-env",
    help="Bootstrap and reconcile a local kind environment with TLS ingress",
    version=__version__,
)


def _configure_logging_from_env() -> None:
    raw_level = os.environ.get("KIND_ENV_LOG_LEVEL", "INFO")
    normalized_level, invalid_level = configure_logging(raw_level, force=True)
    if invalid_level:
        log_warning(
            logger,
            "Invalid KIND_ENV_LOG_LEVEL %r, falling back to %s",
            raw_level,
            normalized_level,
        )


@app.default
def run(workflow: Workflow = Workflow.UP, /) -> int:
    """Run a workflow against the local environment.

    Args:
        workflow: One of up, cleanup, reset or renew-tls.

    Returns:
        Exit code (0 for success, 1 for failure).

    """
    _configure_logging_from_env()
    try:
        cfg = Config.from_env()
        executor = SubprocessExecutor(cwd=cfg.project_root)
        run_workflow(workflow, cfg, executor)
    except KindEnvError as exc:
        log_exception(logger, f"Workflow '{workflow}' failed", exc)
        print(f"FAILED: {workflow}: {exc}")
        return 1
    return 0


def main() -> int:
    """Entry point for the CLI."""
    return app()


if __name__ == "__main__":
    sys.exit(main())
