"""Orchestration pipeline: build, transform, provision, launch.

A :class:`Pipeline` drives one invocation through
``not_built → built → transformed → {launched | deployed → launched}``.
Every step is a blocking call and the first failure ends the run.
"""

from __future__ import annotations

from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from bootrig.builder import PlatformBuilder
from bootrig.config import Settings, disk_image_path, parse_platform
from bootrig.deploy import CrosvmDeployAdapter, QemuLaunchAdapter
from bootrig.disk import ensure_disk_image
from bootrig.errors import BootrigError, ConfigurationError
from bootrig.introspect import Introspector, View
from bootrig.models import (
    BuildResult,
    DeployResult,
    LaunchResult,
    PipelineState,
    Platform,
    Transport,
)
from bootrig.observability import StructuredLogger
from bootrig.process import ProcessRunner, SubprocessRunner
from bootrig.toolchain import Toolchain
from bootrig.transform import ArtifactTransformer

TRANSITIONS: dict[PipelineState, frozenset[PipelineState]] = {
    PipelineState.NOT_BUILT: frozenset({PipelineState.BUILT}),
    PipelineState.BUILT: frozenset({PipelineState.BUILT, PipelineState.TRANSFORMED}),
    PipelineState.TRANSFORMED: frozenset({
        PipelineState.BUILT,
        PipelineState.TRANSFORMED,
        PipelineState.DEPLOYED,
        PipelineState.LAUNCHED,
    }),
    PipelineState.DEPLOYED: frozenset({PipelineState.BUILT, PipelineState.LAUNCHED}),
    PipelineState.LAUNCHED: frozenset({PipelineState.BUILT}),
}


@dataclass(slots=True)
class Pipeline:
    settings: Settings = field(default_factory=Settings)
    runner: ProcessRunner = field(default_factory=SubprocessRunner)
    logger: StructuredLogger = field(default_factory=StructuredLogger)
    _state: PipelineState = field(init=False, default=PipelineState.NOT_BUILT, repr=False)
    _platform: Platform | None = field(init=False, default=None, repr=False)

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def platform(self) -> Platform | None:
        return self._platform

    def setup_environment(self) -> None:
        with self._step("env", platform=None, step="setup"):
            Toolchain(
                runner=self.runner,
                rustc=self.settings.rustc,
                rustup=self.settings.rustup,
            ).setup_environment(self.settings.target.triple)

    def build(self, platform: Platform, *, fresh: bool = False) -> BuildResult:
        parse_platform(platform)
        self._check_transition(PipelineState.BUILT)
        with self._step("build", platform=platform, step="compile"):
            result = PlatformBuilder(settings=self.settings, runner=self.runner).build(
                platform, fresh=fresh
            )
        if result.invalidated:
            self._log(
                "build",
                platform=platform,
                step="compile",
                message="Replaced intermediate image built for another configuration.",
                extra={"key": result.key},
            )
        self._advance(PipelineState.BUILT, platform=platform)
        return result

    def transform(self, platform: Platform) -> Path:
        parse_platform(platform)
        self._check_transition(PipelineState.TRANSFORMED)
        if platform != self._platform:
            raise ConfigurationError(
                "Cannot transform an image built for another platform.",
                hint=f"Build for `{platform}` first.",
                context={"built": str(self._platform), "requested": platform},
            )
        with self._step("transform", platform=platform, step="objcopy"):
            raw = ArtifactTransformer(settings=self.settings).transform(platform)
        self._advance(PipelineState.TRANSFORMED)
        return raw

    def provision_disk(self) -> Path:
        disk = disk_image_path(self.settings)
        with self._step("provision_disk", platform=None, step="img"):
            created = ensure_disk_image(disk)
        self._log(
            "provision_disk",
            platform=None,
            step="img",
            message="Created disk image." if created else "Disk image already present.",
            extra={"path": str(disk), "created": created},
        )
        return disk

    def prepare(self, platform: Platform, *, fresh: bool = False) -> tuple[Path, Path]:
        """Build, transform and provision; return (raw binary, disk image)."""
        self.build(platform, fresh=fresh)
        raw = self.transform(platform)
        disk = self.provision_disk()
        return raw, disk

    def introspect(self, view: View, *, page: bool = True) -> str:
        introspector = Introspector(settings=self.settings, runner=self.runner)
        with self._step("introspect", platform=self._platform, step=view):
            return introspector.show(view) if page else introspector.render(view)

    def clean(self) -> None:
        with self._step("clean", platform=None, step="cargo_clean"):
            PlatformBuilder(settings=self.settings, runner=self.runner).clean()
        self._state = PipelineState.NOT_BUILT
        self._platform = None

    def run_qemu(
        self,
        *,
        transport: Transport = "mmio",
        extra_args: Sequence[str] = (),
        fresh: bool = False,
    ) -> LaunchResult:
        raw, disk = self.prepare("qemu", fresh=fresh)
        self._check_transition(PipelineState.LAUNCHED)
        adapter = QemuLaunchAdapter(
            runner=self.runner,
            qemu_binary=self.settings.qemu_binary,
            extra_args=list(self.settings.qemu_args),
        )
        with self._step("launch", platform="qemu", step=transport):
            result = adapter.launch(
                kernel=raw, disk=disk, transport=transport, extra_args=extra_args
            )
        self._advance(PipelineState.LAUNCHED)
        return result

    def deploy_crosvm(self, *, fresh: bool = False) -> DeployResult:
        raw, disk = self.prepare("crosvm", fresh=fresh)
        self._check_transition(PipelineState.DEPLOYED)
        adapter = CrosvmDeployAdapter(
            runner=self.runner,
            adb=self.settings.adb,
            remote=self.settings.remote,
        )
        with self._step("deploy", platform="crosvm", step="push"):
            pushed = adapter.push(kernel=raw, disk=disk)
        self._advance(PipelineState.DEPLOYED)
        with self._step("launch", platform="crosvm", step="run"):
            launched = adapter.launch()
        self._advance(PipelineState.LAUNCHED)
        return DeployResult(
            backend=adapter.name,
            remote_dir=adapter.remote.work_dir,
            remote_kernel=adapter.remote.kernel_path,
            remote_disk=adapter.remote.disk_path,
            returncode=0,
            commands=(*pushed, launched),
        )

    def _check_transition(self, target: PipelineState) -> None:
        if target not in TRANSITIONS[self._state]:
            raise ConfigurationError(
                "Illegal pipeline transition.",
                context={"from": self._state.value, "to": target.value},
            )

    def _advance(self, target: PipelineState, *, platform: Platform | None = None) -> None:
        self._check_transition(target)
        self._state = target
        if platform is not None:
            self._platform = platform

    @contextmanager
    def _step(self, operation: str, *, platform: str | None, step: str) -> Iterator[None]:
        self._log(operation, platform=platform, step=step, message="Starting.")
        try:
            yield
        except BootrigError as exc:
            self._log(
                operation,
                platform=platform,
                step=step,
                message=exc.args[0] if exc.args else exc.code,
                level="error",
                extra={"code": exc.code, **exc.context},
            )
            raise
        self._log(operation, platform=platform, step=step, message="Completed.")

    def _log(
        self,
        operation: str,
        *,
        platform: str | None,
        step: str | None,
        message: str,
        level: str = "info",
        extra: dict[str, Any] | None = None,
    ) -> None:
        self.logger.log(
            operation=operation,
            platform=platform,
            step=step,
            message=message,
            level=level,
            extra=extra,
        )
