"""Unit tests for the workflow orchestration."""

from __future__ import annotations

import typing as typ

import pytest

from kind_env.errors import ClusterError, ExecutableNotFoundError
from kind_env.hosts import has_entry
from kind_env.orchestration import (
    Workflow,
    bring_up,
    renew_tls,
    reset,
    run_workflow,
    tear_down,
)
from tests.helpers.fake_environment import FakeEnvironment

if typ.TYPE_CHECKING:
    import datetime as dt

    from kind_env.config import Config
    from tests.helpers.fake_environment import FakeClock

# Calls that create or replace a resource rather than converge an object
CREATION_CALLS: tuple[tuple[str, ...], ...] = (
    ("docker", "run"),
    ("docker", "start"),
    ("docker", "network", "connect"),
    ("kind", "create"),
    ("openssl", "req"),
    ("tee", "-a"),
)


def _creation_count(env: FakeEnvironment, cfg: Config) -> int:
    ingress_installs = env.count("kubectl", "apply", "-f", cfg.ingress_manifest_url)
    return ingress_installs + sum(env.count(*prefix) for prefix in CREATION_CALLS)


def _up(cfg: Config, env: FakeEnvironment, now: dt.datetime, clock: FakeClock) -> None:
    bring_up(cfg, env, now=lambda: now, sleep=clock.sleep, monotonic=clock.monotonic)


class TestBringUp:
    """Tests for bring_up."""

    def test_from_scratch(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """An empty host should end with every resource in place."""
        _up(cfg, fake_env, now, clock)

        cluster = fake_env.cluster("kind-cluster")
        assert fake_env.containers["kind-registry"].running
        assert "kind" in fake_env.containers["kind-registry"].networks
        assert "localhost:5000/springboot-cicd-eks:latest" in fake_env.pushed
        assert cfg.tls_cert.is_file()
        assert cluster.ingress_installed
        for kind, name in (
            ("Secret", "springboot-tls"),
            ("Deployment", "springboot-app"),
            ("Service", "springboot-service"),
            ("Ingress", "springboot-ingress"),
        ):
            assert (kind, "team-app", name) in cluster.objects
        assert has_entry(cfg.hosts_file.read_text(encoding="utf-8"), "spring.local")
        assert "https://spring.local" in capsys.readouterr().out

    def test_steps_run_in_order(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """Registry, cluster, image, TLS, ingress, application, hosts."""
        _up(cfg, fake_env, now, clock)

        markers = [
            ("docker", "run"),
            ("kind", "create"),
            ("docker", "push"),
            ("openssl", "req"),
            ("kubectl", "apply", "-f", cfg.ingress_manifest_url),
            ("tee", "-a"),
        ]
        positions = [
            next(i for i, call in enumerate(fake_env.calls) if call[: len(m)] == m)
            for m in markers
        ]
        assert positions == sorted(positions)

    def test_second_run_creates_nothing(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """Re-running on a converged environment should only converge."""
        _up(cfg, fake_env, now, clock)
        first = _creation_count(fake_env, cfg)

        _up(cfg, fake_env, now, clock)

        assert _creation_count(fake_env, cfg) == first
        hosts = cfg.hosts_file.read_text(encoding="utf-8").splitlines()
        assert hosts.count("127.0.0.1 spring.local") == 1

    def test_cluster_failure_prevents_image_build(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A failed cluster creation should abort before the build."""
        fake_env.fail("kind", "create", stderr="failed to create cluster")

        with pytest.raises(ClusterError):
            _up(cfg, fake_env, now, clock)

        assert fake_env.count("docker", "build") == 0
        assert fake_env.count("openssl") == 0
        assert "kind-registry" in fake_env.containers, "registry is left in place"
        assert "https://" not in capsys.readouterr().out

    def test_missing_tool_fails_before_mutation(
        self,
        cfg: Config,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """Preflight should stop the run before any command executes."""
        env = FakeEnvironment(now=now, tools={"docker", "kind", "kubectl"})

        with pytest.raises(ExecutableNotFoundError, match="openssl"):
            _up(cfg, env, now, clock)

        assert env.calls == []


class TestTearDownAndReset:
    """Tests for tear_down and reset."""

    def test_tear_down_removes_everything(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """Cleanup should remove cluster, registry and hosts entry."""
        _up(cfg, fake_env, now, clock)

        tear_down(cfg, fake_env)

        assert fake_env.clusters == {}
        assert fake_env.containers == {}
        assert not has_entry(cfg.hosts_file.read_text(encoding="utf-8"), "spring.local")
        assert cfg.hosts_file.with_name("hosts.bak").is_file()

    def test_tear_down_on_empty_host(
        self, cfg: Config, fake_env: FakeEnvironment
    ) -> None:
        """Cleanup of an absent environment should succeed without deleting."""
        tear_down(cfg, fake_env)

        assert fake_env.count("kind", "delete") == 0
        assert fake_env.count("docker", "rm") == 0
        assert fake_env.count("cp") == 0

    def test_reset_recreates_environment(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """Reset should recreate what cleanup removed."""
        _up(cfg, fake_env, now, clock)

        reset(
            cfg,
            fake_env,
            now=lambda: now,
            sleep=clock.sleep,
            monotonic=clock.monotonic,
        )

        assert fake_env.count("kind", "delete") == 1
        assert fake_env.count("kind", "create") == 2
        assert fake_env.count("docker", "run") == 2
        assert fake_env.cluster("kind-cluster").ingress_installed
        hosts = cfg.hosts_file.read_text(encoding="utf-8").splitlines()
        assert hosts.count("127.0.0.1 spring.local") == 1


class TestRenewTls:
    """Tests for renew_tls and dispatch."""

    def test_renew_tls_only_touches_certificate(
        self,
        cfg: Config,
        fake_env: FakeEnvironment,
        now: dt.datetime,
        clock: FakeClock,
    ) -> None:
        """renew-tls should run only the certificate step."""
        _up(cfg, fake_env, now, clock)
        before = len(fake_env.calls)

        renew_tls(cfg, fake_env, now=lambda: now)

        tools = {call[0] for call in fake_env.calls[before:]}
        assert tools == {"openssl", "kubectl"}

    @pytest.mark.parametrize(
        ("workflow", "target"),
        [
            (Workflow.UP, "bring_up"),
            (Workflow.CLEANUP, "tear_down"),
            (Workflow.RESET, "reset"),
            (Workflow.RENEW_TLS, "renew_tls"),
        ],
    )
    def test_run_workflow_dispatch(
        self,
        monkeypatch: pytest.MonkeyPatch,
        cfg: Config,
        fake_env: FakeEnvironment,
        workflow: Workflow,
        target: str,
    ) -> None:
        """Each workflow should dispatch to its implementation."""
        called: list[str] = []
        monkeypatch.setattr(
            f"kind_env.orchestration.{target}",
            lambda *args, **kwargs: called.append(target),
        )

        run_workflow(workflow, cfg, fake_env)

        assert called == [target]

    def test_workflow_values(self) -> None:
        """Workflow values should be the CLI verbs."""
        assert [workflow.value for workflow in Workflow] == [
            "up",
            "cleanup",
            "reset",
            "renew-tls",
        ]
