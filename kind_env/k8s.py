"""Kubernetes helpers shared by the reconciliation steps.

Manifests are built as plain dictionaries, rendered to YAML with ruamel and
delivered to ``kubectl apply -f -`` on standard input, so every apply is a
full desired-state overwrite and no secret material ever lands on argv.

Every kubectl invocation is pinned to the cluster's ``kind-<name>`` context
so a reused cluster does not depend on the operator's current context.

Examples
--------
Apply a namespace and a config map in one call:

    apply_manifest(cfg, executor, namespace_manifest("team-app"), config_map)

"""

from __future__ import annotations

import io
import typing as typ

from ruamel.yaml import YAML

from kind_env.executor import run_checked
from kind_env.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor, CommandResult

logger = get_logger(__name__)

# Timeout for kubectl queries and applies (seconds).
_KUBECTL_TIMEOUT = 60

MANAGED_BY_LABEL = {"app.kubernetes.io/managed-by": "kind_env"}


def kubectl(cfg: Config, *args: str) -> list[str]:
    """Return a kubectl argv pinned to the cluster's context."""
    return ["kubectl", "--context", cfg.kube_context, *args]


def _yaml() -> YAML:
    yaml_serializer = YAML(typ="safe")
    yaml_serializer.default_flow_style = False
    yaml_serializer.indent(mapping=2, sequence=4, offset=2)
    return yaml_serializer


def render_yaml(*documents: cabc.Mapping[str, object]) -> str:
    """Render one or more manifests as a multi-document YAML stream.

    Parameters
    ----------
    *documents : Mapping[str, object]
        Manifests to render, in apply order.

    Returns
    -------
    str
        YAML text with ``---`` separators between documents.

    """
    with io.StringIO() as stream:
        _yaml().dump_all([dict(doc) for doc in documents], stream)
        return stream.getvalue()


def load_yaml_documents(text: str) -> list[dict[str, typ.Any]]:
    """Parse a YAML stream back into manifest dictionaries."""
    return [doc for doc in _yaml().load_all(text) if doc is not None]


def namespace_manifest(namespace: str) -> dict[str, object]:
    """Return a Namespace manifest."""
    return {
        "apiVersion": "v1",
        "kind": "Namespace",
        "metadata": {"name": namespace, "labels": dict(MANAGED_BY_LABEL)},
    }


def apply_manifest(
    cfg: Config,
    executor: CommandExecutor,
    *documents: cabc.Mapping[str, object],
) -> CommandResult:
    """Apply manifests to the cluster as a single batch via stdin.

    Raises
    ------
    CommandFailedError
        If kubectl rejects the batch.

    """
    return run_checked(
        executor,
        kubectl(cfg, "apply", "-f", "-"),
        input_text=render_yaml(*documents),
        timeout=_KUBECTL_TIMEOUT,
    )


def namespace_exists(cfg: Config, executor: CommandExecutor, namespace: str) -> bool:
    """Check if a Kubernetes namespace exists.

    Parameters
    ----------
    cfg : Config
        Configuration naming the cluster context.
    executor : CommandExecutor
        Executor used to run kubectl.
    namespace : str
        Name of the namespace to check.

    Returns
    -------
    bool
        True if the namespace exists, False otherwise.

    """
    result = executor.run(
        kubectl(cfg, "get", "namespace", namespace), timeout=_KUBECTL_TIMEOUT
    )
    return result.ok


def ensure_namespace(cfg: Config, executor: CommandExecutor, namespace: str) -> bool:
    """Ensure a namespace exists, creating it when absent.

    Returns
    -------
    bool
        True if the namespace was created by this call.

    """
    if namespace_exists(cfg, executor, namespace):
        log_info(logger, "Namespace '%s' already exists.", namespace)
        return False
    log_info(logger, "Creating namespace '%s'...", namespace)
    apply_manifest(cfg, executor, namespace_manifest(namespace))
    return True
