"""Application image build and publish.

Two build strategies are supported. When the project has a ``pom.xml`` and
Maven is installed, Jib builds the image straight into the docker daemon and
reuses its dependency layer cache. Otherwise, or when the Jib build fails,
the ``Dockerfile`` is built with BuildKit inline caching. Either way the
result is tagged with the registry-qualified name and pushed.

Examples
--------
Build and publish the image for the default configuration:

    strategy = build_and_push(Config(), SubprocessExecutor())

"""

from __future__ import annotations

import enum
import typing as typ

from kind_env.errors import CommandFailedError, CommandTimeoutError, ImageBuildError
from kind_env.executor import run_checked
from kind_env.logging import get_logger, log_info, log_warning

if typ.TYPE_CHECKING:
    from kind_env.config import Config
    from kind_env.executor import CommandExecutor

logger = get_logger(__name__)

BUILD_TOOL_DESCRIPTOR = "pom.xml"
CONTAINER_BUILD_DESCRIPTOR = "Dockerfile"

_BUILD_TIMEOUT = 1800
_PUSH_TIMEOUT = 600


class BuildStrategy(enum.StrEnum):
    """Way the application image was produced."""

    JIB = "jib"
    DOCKERFILE = "dockerfile"


def select_strategy(cfg: Config, executor: CommandExecutor) -> BuildStrategy:
    """Choose the preferred build strategy for the project.

    Raises
    ------
    ImageBuildError
        If the project has neither build descriptor.

    """
    root = cfg.project_root
    if (root / BUILD_TOOL_DESCRIPTOR).is_file() and executor.which("mvn"):
        return BuildStrategy.JIB
    if (root / CONTAINER_BUILD_DESCRIPTOR).is_file():
        return BuildStrategy.DOCKERFILE
    msg = (
        f"No build definition ({BUILD_TOOL_DESCRIPTOR} or "
        f"{CONTAINER_BUILD_DESCRIPTOR}) found in {root}"
    )
    raise ImageBuildError(msg)


def _build_with_jib(cfg: Config, executor: CommandExecutor) -> bool:
    """Run the Jib docker build and report whether it succeeded."""
    log_info(logger, "Building %s with Maven Jib (cache aware)...", cfg.image)
    try:
        result = executor.run(
            ["mvn", "compile", "jib:dockerBuild", f"-Dimage={cfg.image}"],
            timeout=_BUILD_TIMEOUT,
            stream=True,
        )
    except CommandTimeoutError as exc:
        log_warning(logger, "Jib build did not finish: %s", exc)
        return False
    return result.ok


def _build_with_dockerfile(cfg: Config, executor: CommandExecutor) -> None:
    if not (cfg.project_root / CONTAINER_BUILD_DESCRIPTOR).is_file():
        msg = f"No {CONTAINER_BUILD_DESCRIPTOR} found in {cfg.project_root}"
        raise ImageBuildError(msg)
    log_info(logger, "Building %s with Dockerfile (cache aware)...", cfg.image)
    try:
        run_checked(
            executor,
            [
                "docker",
                "build",
                "--build-arg",
                "BUILDKIT_INLINE_CACHE=1",
                "-t",
                cfg.image,
                ".",
            ],
            timeout=_BUILD_TIMEOUT,
            stream=True,
        )
    except CommandFailedError as exc:
        msg = f"docker build failed for '{cfg.image}': {exc}"
        raise ImageBuildError(msg) from exc


def push_image(cfg: Config, executor: CommandExecutor) -> None:
    """Tag the local image with the registry name and push it.

    Raises
    ------
    ImageBuildError
        If tagging or pushing fails.

    """
    log_info(logger, "Pushing %s...", cfg.local_image)
    try:
        run_checked(executor, ["docker", "tag", cfg.image, cfg.local_image])
        run_checked(
            executor,
            ["docker", "push", cfg.local_image],
            timeout=_PUSH_TIMEOUT,
            stream=True,
        )
    except CommandFailedError as exc:
        msg = f"Failed to publish '{cfg.local_image}': {exc}"
        raise ImageBuildError(msg) from exc


def build_and_push(cfg: Config, executor: CommandExecutor) -> BuildStrategy:
    """Build the application image and publish it to the registry.

    Jib is tried once when available; a failed Jib build falls back to the
    Dockerfile without retrying Jib.

    Parameters
    ----------
    cfg : Config
        Configuration with the project root, image name and registry.
    executor : CommandExecutor
        Executor used to run maven and docker.

    Returns
    -------
    BuildStrategy
        The strategy that produced the pushed image.

    Raises
    ------
    ImageBuildError
        If no build definition exists, every applicable build fails, or the
        push fails. Nothing is pushed in those cases.

    """
    strategy = select_strategy(cfg, executor)
    if strategy is BuildStrategy.JIB:
        if not _build_with_jib(cfg, executor):
            log_warning(logger, "Jib build failed. Falling back to Dockerfile build...")
            strategy = BuildStrategy.DOCKERFILE
            _build_with_dockerfile(cfg, executor)
    else:
        _build_with_dockerfile(cfg, executor)

    push_image(cfg, executor)
    log_info(logger, "Application image pushed to %s.", cfg.registry)
    return strategy
