"""kind cluster lifecycle and registry wiring.

This module creates the kind cluster when it is missing, joins the registry
container to the ``kind`` docker network, points each node's containerd at
the registry container and publishes the ``local-registry-hosting``
ConfigMap so cluster tooling can discover the local registry.

Public API
----------
- ``cluster_exists``: Check whether a named kind cluster exists.
- ``write_default_cluster_config``: Write the default topology descriptor.
- ``ensure_cluster``: Create and wire the cluster, idempotently.
- ``configure_registry_mirror``: Route node image pulls to the registry.
- ``delete_cluster``: Delete the cluster if present.

Notes
-----
The default descriptor maps host ports 80 and 443 to the control-plane node
and labels it ``ingress-ready=true``, which the kind flavour of the
ingress-nginx manifest selects on. Registry mirrors use containerd's
``config_path`` host directory, which node images with containerd 2.x
require; the legacy ``registry.mirrors`` table is not written.

"""

from __future__ import annotations

import typing as typ

import msgspec
from ruamel.yaml import YAML

from kind_env.config import DeploymentTarget
from kind_env.errors import ClusterError, CommandFailedError
from kind_env.executor import run_checked
from kind_env.k8s import MANAGED_BY_LABEL, apply_manifest
from kind_env.logging import get_logger, log_info
from kind_env.registry import REGISTRY_CONTAINER_PORT

if typ.TYPE_CHECKING:
    from pathlib import Path

    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

_KIND_QUERY_TIMEOUT = 60
_KIND_CREATE_TIMEOUT = 600
_KIND_DELETE_TIMEOUT = 300

LOCAL_REGISTRY_HELP_URL = "https://kind.sigs.k8s.io/docs/user/local-registry/"
CONTAINERD_CERTS_DIR = "/etc/containerd/certs.d"


def list_clusters(executor: CommandExecutor) -> list[str]:
    """Return the names of existing kind clusters.

    Raises
    ------
    ClusterError
        If kind cannot list clusters.

    """
    try:
        result = run_checked(
            executor, ["kind", "get", "clusters"], timeout=_KIND_QUERY_TIMEOUT
        )
    except CommandFailedError as exc:
        msg = f"Failed to list kind clusters: {exc}"
        raise ClusterError(msg) from exc
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def cluster_exists(cfg: Config, executor: CommandExecutor) -> bool:
    """Check if the configured kind cluster exists."""
    return cfg.cluster_name in list_clusters(executor)


def default_cluster_config() -> dict[str, object]:
    """Return the default kind topology descriptor."""
    registry_hosts = (
        '[plugins."io.containerd.grpc.v1.cri".registry]\n'
        f'  config_path = "{CONTAINERD_CERTS_DIR}"'
    )
    init_configuration = (
        "kind: InitConfiguration\n"
        "nodeRegistration:\n"
        "  kubeletExtraArgs:\n"
        '    node-labels: "ingress-ready=true"\n'
    )
    return {
        "kind": "Cluster",
        "apiVersion": "kind.x-k8s.io/v1alpha4",
        "containerdConfigPatches": [registry_hosts],
        "nodes": [
            {
                "role": "control-plane",
                "kubeadmConfigPatches": [init_configuration],
                "extraPortMappings": [
                    {"containerPort": 80, "hostPort": 80, "protocol": "TCP"},
                    {"containerPort": 443, "hostPort": 443, "protocol": "TCP"},
                ],
            }
        ],
    }


def registry_hosts_toml(cfg: Config) -> str:
    """Return the containerd ``hosts.toml`` routing ``cfg.registry`` pulls."""
    return (
        f'[host."http://{cfg.registry_name}:{REGISTRY_CONTAINER_PORT}"]\n'
        '  capabilities = ["pull", "resolve"]\n'
    )


def write_default_cluster_config(cfg: Config) -> Path:
    """Write the default topology descriptor if none exists.

    Returns
    -------
    Path
        Path of the descriptor kind is pointed at.

    """
    path = cfg.cluster_config_path
    if path.exists():
        return path
    log_info(logger, "Writing default kind config to %s...", path)
    path.parent.mkdir(parents=True, exist_ok=True)
    yaml_serializer = YAML(typ="safe")
    yaml_serializer.default_flow_style = False
    with path.open("w", encoding="utf-8") as stream:
        yaml_serializer.dump(default_cluster_config(), stream)
    return path


def _create_cluster(cfg: Config, executor: CommandExecutor) -> None:
    config_path = write_default_cluster_config(cfg)
    log_info(logger, "Creating kind cluster '%s'...", cfg.cluster_name)
    try:
        run_checked(
            executor,
            [
                "kind",
                "create",
                "cluster",
                "--name",
                cfg.cluster_name,
                "--config",
                str(config_path),
            ],
            timeout=_KIND_CREATE_TIMEOUT,
            stream=True,
        )
    except CommandFailedError as exc:
        msg = f"kind cluster creation failed for '{cfg.cluster_name}': {exc}"
        raise ClusterError(msg) from exc


def container_networks(executor: CommandExecutor, container: str) -> set[str]:
    """Return the docker networks a container is attached to.

    Raises
    ------
    ClusterError
        If the container cannot be inspected.

    """
    try:
        result = run_checked(
            executor,
            [
                "docker",
                "inspect",
                "--type",
                "container",
                "-f",
                "{{json .NetworkSettings.Networks}}",
                container,
            ],
            timeout=_KIND_QUERY_TIMEOUT,
        )
        networks = msgspec.json.decode(
            result.stdout.strip() or "{}", type=dict[str, typ.Any] | None
        )
    except CommandFailedError as exc:
        msg = f"Failed to inspect networks of '{container}': {exc}"
        raise ClusterError(msg) from exc
    except msgspec.DecodeError as exc:
        msg = f"Unexpected network listing for '{container}': {exc}"
        raise ClusterError(msg) from exc
    return set(networks or {})


def connect_registry_network(cfg: Config, executor: CommandExecutor) -> bool:
    """Join the registry container to the kind network unless already joined.

    Returns
    -------
    bool
        True if the container was connected by this call.

    """
    if cfg.kind_network in container_networks(executor, cfg.registry_name):
        log_info(
            logger,
            "Registry '%s' already on network '%s'.",
            cfg.registry_name,
            cfg.kind_network,
        )
        return False
    log_info(
        logger,
        "Connecting registry '%s' to network '%s'...",
        cfg.registry_name,
        cfg.kind_network,
    )
    try:
        run_checked(
            executor,
            ["docker", "network", "connect", cfg.kind_network, cfg.registry_name],
            timeout=_KIND_QUERY_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = (
            f"Failed to connect '{cfg.registry_name}' to network "
            f"'{cfg.kind_network}': {exc}"
        )
        raise ClusterError(msg) from exc
    return True


def list_nodes(cfg: Config, executor: CommandExecutor) -> list[str]:
    """Return the node container names of the configured cluster.

    Raises
    ------
    ClusterError
        If kind cannot list the nodes.

    """
    try:
        result = run_checked(
            executor,
            ["kind", "get", "nodes", "--name", cfg.cluster_name],
            timeout=_KIND_QUERY_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"Failed to list nodes of '{cfg.cluster_name}': {exc}"
        raise ClusterError(msg) from exc
    return [line.strip() for line in result.stdout.splitlines() if line.strip()]


def configure_registry_mirror(cfg: Config, executor: CommandExecutor) -> None:
    """Write the registry ``hosts.toml`` into every node's containerd config.

    The file content depends only on ``cfg``, so rewriting it on an already
    configured node leaves the node unchanged.

    Raises
    ------
    ClusterError
        If a node cannot be listed or written to.

    """
    hosts_dir = f"{CONTAINERD_CERTS_DIR}/{cfg.registry}"
    hosts_toml = registry_hosts_toml(cfg)
    for node in list_nodes(cfg, executor):
        log_info(logger, "Routing %s pulls on node '%s'...", cfg.registry, node)
        try:
            run_checked(
                executor,
                ["docker", "exec", node, "mkdir", "-p", hosts_dir],
                timeout=_KIND_QUERY_TIMEOUT,
            )
            run_checked(
                executor,
                [
                    "docker",
                    "exec",
                    "-i",
                    node,
                    "cp",
                    "/dev/stdin",
                    f"{hosts_dir}/hosts.toml",
                ],
                input_text=hosts_toml,
                timeout=_KIND_QUERY_TIMEOUT,
            )
        except CommandFailedError as exc:
            msg = f"Failed to configure registry mirror on '{node}': {exc}"
            raise ClusterError(msg) from exc


def registry_hosting_manifest(cfg: Config) -> dict[str, object]:
    """Return the ConfigMap advertising the local registry to the cluster."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": "local-registry-hosting",
            "namespace": "kube-public",
            "labels": dict(MANAGED_BY_LABEL),
        },
        "data": {
            "localRegistryHosting.v1": (
                f'host: "{cfg.registry}"\nhelp: "{LOCAL_REGISTRY_HELP_URL}"\n'
            ),
        },
    }


def ensure_cluster(cfg: Config, executor: CommandExecutor) -> bool:
    """Ensure the kind cluster exists and can pull from the local registry.

    Parameters
    ----------
    cfg : Config
        Configuration naming the cluster, registry and network.
    executor : CommandExecutor
        Executor used to run kind, docker and kubectl.

    Returns
    -------
    bool
        True if the cluster was created by this call.

    Raises
    ------
    ClusterError
        If creation, network wiring, node mirror configuration or the
        discovery ConfigMap fails.

    """
    created = False
    if cluster_exists(cfg, executor):
        log_info(logger, "kind cluster '%s' already exists.", cfg.cluster_name)
    else:
        _create_cluster(cfg, executor)
        created = True

    if cfg.target is DeploymentTarget.LOCAL:
        connect_registry_network(cfg, executor)
        configure_registry_mirror(cfg, executor)
        log_info(logger, "Publishing local registry hosting ConfigMap...")
        try:
            apply_manifest(cfg, executor, registry_hosting_manifest(cfg))
        except CommandFailedError as exc:
            msg = f"Failed to apply local-registry-hosting ConfigMap: {exc}"
            raise ClusterError(msg) from exc
    return created


def delete_cluster(cfg: Config, executor: CommandExecutor) -> bool:
    """Delete the kind cluster if it exists.

    Returns
    -------
    bool
        True if a cluster was deleted.

    """
    if not cluster_exists(cfg, executor):
        log_info(logger, "kind cluster '%s' does not exist.", cfg.cluster_name)
        return False
    log_info(logger, "Deleting kind cluster '%s'...", cfg.cluster_name)
    try:
        run_checked(
            executor,
            ["kind", "delete", "cluster", "--name", cfg.cluster_name],
            timeout=_KIND_DELETE_TIMEOUT,
        )
    except CommandFailedError as exc:
        msg = f"kind cluster deletion failed for '{cfg.cluster_name}': {exc}"
        raise ClusterError(msg) from exc
    return True
