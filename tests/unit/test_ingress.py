"""Unit tests for the ingress controller installer."""

from __future__ import annotations

import dataclasses
import typing as typ

import msgspec
import pytest

from kind_env.errors import IngressError, IngressTimeoutError
from kind_env.ingress import DeploymentDocument, ensure_ingress_controller, is_available
from tests.helpers.fake_environment import FakeClock, FakeCluster, FakeEnvironment

if typ.TYPE_CHECKING:
    from kind_env.config import Config


@pytest.fixture
def cluster(cfg: Config, fake_env: FakeEnvironment) -> FakeCluster:
    """Provide a running cluster without an ingress controller."""
    created = FakeCluster(config_path=cfg.cluster_config_path)
    fake_env.clusters[cfg.cluster_name] = created
    return created


class TestIsAvailable:
    """Tests for Deployment status decoding."""

    def test_available_condition(self) -> None:
        """An Available=True condition should report available."""
        document = msgspec.json.decode(
            b'{"status": {"conditions": [{"type": "Available", "status": "True"}]}}',
            type=DeploymentDocument,
        )
        assert is_available(document)

    def test_missing_status(self) -> None:
        """A Deployment without status should not be available."""
        document = msgspec.json.decode(b'{"metadata": {}}', type=DeploymentDocument)
        assert not is_available(document)


class TestEnsureIngressController:
    """Tests for ensure_ingress_controller."""

    def test_installs_and_waits(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """A missing controller should be installed and polled until ready."""
        fake_env.ingress_ready_after = 3

        installed = ensure_ingress_controller(
            cfg, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
        )

        assert installed is True
        assert fake_env.count("kubectl", "apply", "-f", cfg.ingress_manifest_url) == 1
        assert cluster.ingress_polls == 3
        assert clock.sleeps == [5, 5]

    def test_existing_controller_is_not_reinstalled(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """An existing ingress namespace should skip installation."""
        cluster.namespaces.add("ingress-nginx")

        installed = ensure_ingress_controller(
            cfg, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
        )

        assert installed is False
        assert fake_env.count("kubectl", "apply") == 0
        assert cluster.ingress_polls == 0

    def test_timeout(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """A controller that never becomes available should time out."""
        fake_env.ingress_ready_after = 10_000

        with pytest.raises(IngressTimeoutError) as excinfo:
            ensure_ingress_controller(
                cfg, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
            )

        assert excinfo.value.timeout == 180
        assert clock.current == pytest.approx(180)

    def test_short_timeout_caps_last_sleep(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """The final sleep should not overshoot the deadline."""
        fake_env.ingress_ready_after = 10_000
        short = dataclasses.replace(cfg, ingress_timeout=12)

        with pytest.raises(IngressTimeoutError):
            ensure_ingress_controller(
                short, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
            )

        assert clock.sleeps == [5, 5, 2]

    def test_apply_failure(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """A manifest that cannot be applied should raise IngressError."""
        fake_env.fail("kubectl", "apply", "-f", cfg.ingress_manifest_url)

        with pytest.raises(IngressError, match="ingress controller manifest"):
            ensure_ingress_controller(
                cfg, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
            )

        assert clock.sleeps == []

    def test_status_query_never_outlives_deadline(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """Each status query should be bounded by the time left to wait."""
        fake_env.ingress_ready_after = 10_000
        short = dataclasses.replace(cfg, ingress_timeout=12)

        with pytest.raises(IngressTimeoutError):
            ensure_ingress_controller(
                short, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
            )

        query_timeouts = [
            timeout
            for call, timeout in zip(fake_env.calls, fake_env.timeouts, strict=True)
            if call[:3] == ("kubectl", "get", "deployment")
        ]
        assert query_timeouts == [12, 7, 2, 1]

    def test_status_query_timeout_counts_as_not_ready(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        cluster: FakeCluster,
        clock: FakeClock,
    ) -> None:
        """A hung status query should be polled again until the deadline."""
        fake_env.time_out("kubectl", "get", "deployment")
        short = dataclasses.replace(cfg, ingress_timeout=12)

        with pytest.raises(IngressTimeoutError):
            ensure_ingress_controller(
                short, fake_env, sleep=clock.sleep, monotonic=clock.monotonic
            )

        assert fake_env.count("kubectl", "get", "deployment") == 4
        assert clock.sleeps == [5, 5, 2]
