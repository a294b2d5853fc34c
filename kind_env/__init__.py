"""Local kind environment bootstrap and reconciliation.

This package brings a disposable kind cluster, its image registry, a
self-signed TLS certificate, the NGINX ingress controller and the
application's runtime objects to their target state, and tears them down
again. The primary entrypoints are:

- bring_up: Reconcile the full environment; safe to re-run
- tear_down: Delete the cluster, registry and hosts entry
- reset: Tear down, then bring up
- renew_tls: Regenerate the certificate if due and republish the Secret

For lower-level operations, import directly from submodules:

- kind_env.registry: local registry container lifecycle
- kind_env.cluster: kind cluster lifecycle and registry wiring
- kind_env.image: application image build and push
- kind_env.tls: certificate lifecycle
- kind_env.ingress: ingress controller installation
- kind_env.deployment: application manifests
- kind_env.hosts: hosts file entry

"""

from __future__ import annotations

__version__ = "0.1.0"

from kind_env.config import Config, DeploymentTarget
from kind_env.errors import (
    CommandFailedError,
    ConfigurationError,
    ExecutableNotFoundError,
    KindEnvError,
)
from kind_env.executor import CommandExecutor, CommandResult, SubprocessExecutor
from kind_env.orchestration import (
    Workflow,
    bring_up,
    renew_tls,
    reset,
    run_workflow,
    tear_down,
)

# Public API: only stable exports for external consumers
__all__ = [
    "CommandExecutor",
    "CommandFailedError",
    "CommandResult",
    "ConfigurationError",
    "Config",
    "DeploymentTarget",
    "ExecutableNotFoundError",
    "KindEnvError",
    "SubprocessExecutor",
    "Workflow",
    "__version__",
    "bring_up",
    "renew_tls",
    "reset",
    "run_workflow",
    "tear_down",
]
