"""Application Deployment, Service and Ingress manifests.

The three documents are applied as one ``kubectl apply`` batch so the
cluster always receives the complete desired state. Rollout is not awaited
here; the objects are only materialized.
"""

from __future__ import annotations

import typing as typ

from kind_env.errors import CommandFailedError, DeploymentError
from kind_env.k8s import MANAGED_BY_LABEL, apply_manifest
from kind_env.logging import get_logger, log_info

if typ.TYPE_CHECKING:
    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)


def _labels(cfg: Config) -> dict[str, str]:
    return {"app": cfg.app_name, **MANAGED_BY_LABEL}


def _http_probe(cfg: Config, initial_delay: int, period: int) -> dict[str, object]:
    return {
        "httpGet": {"path": cfg.health_path, "port": cfg.container_port},
        "initialDelaySeconds": initial_delay,
        "periodSeconds": period,
    }


def deployment_manifest(cfg: Config) -> dict[str, object]:
    """Return the application Deployment manifest."""
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": cfg.app_name,
            "namespace": cfg.namespace,
            "labels": _labels(cfg),
        },
        "spec": {
            "replicas": cfg.replicas,
            "selector": {"matchLabels": {"app": cfg.app_name}},
            "template": {
                "metadata": {"labels": _labels(cfg)},
                "spec": {
                    "containers": [
                        {
                            "name": cfg.app_name,
                            "image": cfg.local_image,
                            "ports": [{"containerPort": cfg.container_port}],
                            "envFrom": [
                                {"configMapRef": {"name": cfg.app_config_map}},
                                {"secretRef": {"name": cfg.app_secret_name}},
                            ],
                            "readinessProbe": _http_probe(cfg, 10, 10),
                            "livenessProbe": _http_probe(cfg, 30, 30),
                        }
                    ]
                },
            },
        },
    }


def service_manifest(cfg: Config) -> dict[str, object]:
    """Return the ClusterIP Service fronting the Deployment."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": cfg.service_name,
            "namespace": cfg.namespace,
            "labels": _labels(cfg),
        },
        "spec": {
            "type": "ClusterIP",
            "selector": {"app": cfg.app_name},
            "ports": [{"port": cfg.container_port, "targetPort": cfg.container_port}],
        },
    }


def ingress_manifest(cfg: Config) -> dict[str, object]:
    """Return the TLS-terminated Ingress routing the hostname to the Service."""
    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": {
            "name": cfg.ingress_name,
            "namespace": cfg.namespace,
            "labels": _labels(cfg),
            "annotations": {"nginx.ingress.kubernetes.io/rewrite-target": "/"},
        },
        "spec": {
            "ingressClassName": "nginx",
            "tls": [{"hosts": [cfg.hostname], "secretName": cfg.tls_secret_name}],
            "rules": [
                {
                    "host": cfg.hostname,
                    "http": {
                        "paths": [
                            {
                                "path": "/",
                                "pathType": "Prefix",
                                "backend": {
                                    "service": {
                                        "name": cfg.service_name,
                                        "port": {"number": cfg.container_port},
                                    }
                                },
                            }
                        ]
                    },
                }
            ],
        },
    }


def application_manifests(cfg: Config) -> list[dict[str, object]]:
    """Return the Deployment, Service and Ingress in apply order."""
    return [deployment_manifest(cfg), service_manifest(cfg), ingress_manifest(cfg)]


def apply_application(cfg: Config, executor: CommandExecutor) -> None:
    """Apply the application's Deployment, Service and Ingress.

    Raises
    ------
    DeploymentError
        If kubectl rejects the batch.

    """
    log_info(logger, "Applying application manifests to '%s'...", cfg.namespace)
    try:
        apply_manifest(cfg, executor, *application_manifests(cfg))
    except CommandFailedError as exc:
        msg = f"Failed to apply application manifests: {exc}"
        raise DeploymentError(msg) from exc
    log_info(logger, "Application deployed with TLS ingress for %s.", cfg.hostname)
