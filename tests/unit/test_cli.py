"""Unit tests for the kind-env command line."""

from __future__ import annotations

import typing as typ

import pytest

from kind_env import __version__, cli
from kind_env.errors import ClusterError
from kind_env.orchestration import Workflow

if typ.TYPE_CHECKING:
    from kind_env.config import Config
    from kind_env.executor import CommandExecutor


@pytest.fixture
def workflow_calls(monkeypatch: pytest.MonkeyPatch) -> list[Workflow]:
    """Replace workflow execution and logging setup with recorders."""
    calls: list[Workflow] = []

    def _run_workflow(
        workflow: Workflow, cfg: Config, executor: CommandExecutor
    ) -> None:
        calls.append(workflow)

    monkeypatch.setattr(cli, "run_workflow", _run_workflow)
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: ("INFO", False))
    for name in ("KIND_ENV_REGISTRY_ADDRESS", "KIND_ENV_REGISTRY_PORT"):
        monkeypatch.delenv(name, raising=False)
    return calls


class TestCliStructure:
    """Tests for CLI structure."""

    def test_app_has_name(self) -> None:
        """App should have the console script name."""
        # Cyclopts returns name as a tuple
        assert cli.app.name == ("kind-env",)

    def test_app_has_version(self) -> None:
        """App should report the package version."""
        assert cli.app.version == __version__

    @pytest.mark.parametrize(
        ("tokens", "expected"),
        [
            ([], Workflow.UP),
            (["up"], Workflow.UP),
            (["cleanup"], Workflow.CLEANUP),
            (["reset"], Workflow.RESET),
            (["renew-tls"], Workflow.RENEW_TLS),
        ],
    )
    def test_positional_workflow(
        self, tokens: list[str], expected: Workflow
    ) -> None:
        """The optional positional verb should select the workflow."""
        parsed = cli.app.parse_args(tokens)
        command, bound = parsed[0], parsed[1]
        bound.apply_defaults()

        assert command is cli.run
        assert bound.args == (expected,)


class TestRun:
    """Tests for the run command body."""

    def test_success_exit_code(self, workflow_calls: list[Workflow]) -> None:
        """A successful workflow should exit 0."""
        assert cli.run(Workflow.CLEANUP) == 0
        assert workflow_calls == [Workflow.CLEANUP]

    def test_failure_exit_code(
        self,
        monkeypatch: pytest.MonkeyPatch,
        workflow_calls: list[Workflow],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """A KindEnvError should exit 1 with a failure line."""

        def _fail(*args: object) -> None:
            msg = "kind cluster creation failed"
            raise ClusterError(msg)

        monkeypatch.setattr(cli, "run_workflow", _fail)

        assert cli.run(Workflow.UP) == 1
        out = capsys.readouterr().out
        assert "FAILED: up: kind cluster creation failed" in out

    def test_configuration_error_exit_code(
        self,
        monkeypatch: pytest.MonkeyPatch,
        workflow_calls: list[Workflow],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        """An invalid environment variable should exit 1 before any work."""
        monkeypatch.setenv("KIND_ENV_REGISTRY_PORT", "nope")

        assert cli.run() == 1
        assert workflow_calls == []
        assert "KIND_ENV_REGISTRY_PORT" in capsys.readouterr().out
