"""Configuration for the local kind environment.

``Config`` is the single value object passed into every reconciliation step.
Defaults mirror the fixed names of the environment; ``Config.from_env``
allows individual overrides for operators who run several environments side
by side.

Usage
-----
>>> cfg = Config()
>>> cfg.local_image
'localhost:5000/springboot-cicd-eks:latest'
>>> cfg.target
<DeploymentTarget.LOCAL: 'local'>

"""

from __future__ import annotations

import dataclasses as dc
import enum
import os
import shlex
from pathlib import Path

from kind_env.errors import ConfigurationError

# Host ports below 1024 need root to bind
_MIN_PORT = 1024
_MAX_PORT = 65535

_LOCAL_REGISTRY_HOSTS = frozenset({"localhost", "127.0.0.1"})
_MANAGED_REGISTRY_SUFFIX = ".amazonaws.com"

INGRESS_NGINX_KIND_MANIFEST = (
    "https://raw.githubusercontent.com/kubernetes/ingress-nginx/main/"
    "deploy/static/provider/kind/deploy.yaml"
)


class DeploymentTarget(enum.StrEnum):
    """Where the application image is published."""

    LOCAL = "local"
    MANAGED_CLOUD = "managed-cloud"

    @classmethod
    def from_registry_address(
        cls, address: str, registry_name: str
    ) -> DeploymentTarget:
        """Classify a registry address once, at configuration load time.

        Parameters
        ----------
        address : str
            Registry address in ``host[:port]`` form.
        registry_name : str
            Name of the local registry container, which is routable from
            inside the kind network.

        Returns
        -------
        DeploymentTarget
            ``LOCAL`` for loopback or the registry container, ``MANAGED_CLOUD``
            for an ECR endpoint.

        Raises
        ------
        ConfigurationError
            If the address matches neither variant.

        """
        host = address.strip().split("/", 1)[0].split(":", 1)[0].lower()
        if host in _LOCAL_REGISTRY_HOSTS or host == registry_name:
            return cls.LOCAL
        if host.endswith(_MANAGED_REGISTRY_SUFFIX):
            return cls.MANAGED_CLOUD
        msg = f"Unrecognized registry address: {address!r}"
        raise ConfigurationError(msg)


@dc.dataclass(frozen=True, slots=True)
class Config:
    """Configuration for the local kind environment.

    All relative paths resolve against ``project_root``.

    Attributes
    ----------
    registry_address
        Address images are pushed to. ``None`` means ``localhost:<port>``.
    renewal_threshold_days
        A certificate with this many days left, or fewer, is regenerated.
    privilege_command
        Prefix for commands that write the hosts file. Empty runs them as
        the current user.

    """

    cluster_name: str = "kind-cluster"
    cluster_config: Path = dc.field(default_factory=lambda: Path("kind-cluster.yaml"))
    kind_network: str = "kind"
    registry_name: str = "kind-registry"
    registry_port: int = 5000
    registry_image: str = "registry:2"
    registry_address: str | None = None
    app_image_name: str = "springboot-cicd-eks"
    image_tag: str = "latest"
    namespace: str = "team-app"
    app_name: str = "springboot-app"
    service_name: str = "springboot-service"
    ingress_name: str = "springboot-ingress"
    container_port: int = 8080
    replicas: int = 1
    health_path: str = "/actuator/health"
    app_config_map: str = "springboot-cicd-eks-config"
    # S105 false positive: names of Kubernetes Secret objects, not secrets.
    app_secret_name: str = "springboot-cicd-eks-secret"  # noqa: S105
    tls_secret_name: str = "springboot-tls"  # noqa: S105
    hostname: str = "spring.local"
    tls_dir: Path = dc.field(default_factory=lambda: Path("tls"))
    cert_validity_days: int = 365
    renewal_threshold_days: int = 30
    key_bits: int = 2048
    ingress_namespace: str = "ingress-nginx"
    ingress_deployment: str = "ingress-nginx-controller"
    ingress_manifest_url: str = INGRESS_NGINX_KIND_MANIFEST
    ingress_timeout: float = 180
    ingress_poll_interval: float = 5
    hosts_file: Path = dc.field(default_factory=lambda: Path("/etc/hosts"))
    loopback_address: str = "127.0.0.1"
    privilege_command: tuple[str, ...] = ("sudo",)
    project_root: Path = dc.field(default_factory=Path.cwd)
    target: DeploymentTarget = dc.field(init=False)

    def __post_init__(self) -> None:
        """Classify the registry address so an unroutable one fails early."""
        target = DeploymentTarget.from_registry_address(
            self.registry, self.registry_name
        )
        object.__setattr__(self, "target", target)

    @property
    def registry(self) -> str:
        """Return the registry address images are pushed to."""
        return self.registry_address or f"localhost:{self.registry_port}"

    @property
    def image(self) -> str:
        """Return the locally built image reference."""
        return f"{self.app_image_name}:{self.image_tag}"

    @property
    def local_image(self) -> str:
        """Return the registry-qualified image reference."""
        return f"{self.registry}/{self.image}"

    @property
    def kube_context(self) -> str:
        """Return the kubeconfig context kind creates for the cluster."""
        return f"kind-{self.cluster_name}"

    @property
    def tls_cert(self) -> Path:
        """Return the certificate path."""
        return self._resolve(self.tls_dir) / "tls.crt"

    @property
    def tls_key(self) -> Path:
        """Return the private key path."""
        return self._resolve(self.tls_dir) / "tls.key"

    @property
    def cluster_config_path(self) -> Path:
        """Return the kind topology descriptor path."""
        return self._resolve(self.cluster_config)

    def _resolve(self, path: Path) -> Path:
        return path if path.is_absolute() else self.project_root / path

    @staticmethod
    def _parse_port(env_var: str, raw: str) -> int:
        """Parse a host port from an environment variable value."""
        try:
            port = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise ConfigurationError(msg) from exc
        if not _MIN_PORT <= port <= _MAX_PORT:
            msg = f"{env_var} must be between {_MIN_PORT} and {_MAX_PORT}, got: {port}"
            raise ConfigurationError(msg)
        return port

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> Config:
        """Create configuration from environment variables.

        Reads the following optional variables:

        - ``KIND_ENV_CLUSTER``: kind cluster name.
        - ``KIND_ENV_NAMESPACE``: application namespace.
        - ``KIND_ENV_HOSTNAME``: TLS hostname and hosts entry.
        - ``KIND_ENV_REGISTRY_PORT``: host port of the local registry.
        - ``KIND_ENV_REGISTRY_ADDRESS``: registry images are pushed to.
        - ``KIND_ENV_TLS_DIR``: directory holding ``tls.key``/``tls.crt``.
        - ``KIND_ENV_HOSTS_FILE``: hosts file to patch.
        - ``KIND_ENV_PRIVILEGE_COMMAND``: prefix for hosts file writes;
          an empty value disables it.

        Parameters
        ----------
        environ : dict[str, str] | None
            Mapping to read instead of ``os.environ``.

        Returns
        -------
        Config
            Configuration instance with values from environment or defaults.

        Raises
        ------
        ConfigurationError
            If a value is malformed or the registry address is unroutable.

        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}

        for env_var, field_name in (
            ("KIND_ENV_CLUSTER", "cluster_name"),
            ("KIND_ENV_NAMESPACE", "namespace"),
            ("KIND_ENV_HOSTNAME", "hostname"),
            ("KIND_ENV_REGISTRY_ADDRESS", "registry_address"),
        ):
            value = env.get(env_var, "").strip()
            if value:
                overrides[field_name] = value

        raw_port = env.get("KIND_ENV_REGISTRY_PORT", "").strip()
        if raw_port:
            overrides["registry_port"] = cls._parse_port(
                "KIND_ENV_REGISTRY_PORT", raw_port
            )

        for env_var, field_name in (
            ("KIND_ENV_TLS_DIR", "tls_dir"),
            ("KIND_ENV_HOSTS_FILE", "hosts_file"),
        ):
            value = env.get(env_var, "").strip()
            if value:
                overrides[field_name] = Path(value)

        if "KIND_ENV_PRIVILEGE_COMMAND" in env:
            overrides["privilege_command"] = tuple(
                shlex.split(env["KIND_ENV_PRIVILEGE_COMMAND"])
            )

        return cls(**overrides)  # type: ignore[arg-type]
