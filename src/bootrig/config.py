"""Settings and deterministic artifact path resolution.

``Settings`` holds every knob the pipeline needs: where the kernel crate lives,
the (triple, mode) build target, tool names and the remote device layout.
``resolve_paths`` turns settings plus a platform into the filesystem layout
used by every other stage; it has no side effects.
"""

from __future__ import annotations

import os
import shlex
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path

from bootrig.errors import ConfigurationError
from bootrig.models import (
    BUILD_MODES,
    DEFAULT_MODE,
    DEFAULT_TRIPLE,
    PLATFORMS,
    ArtifactPaths,
    BuildTarget,
    Platform,
)

LOCK_FILENAME = ".bootrig.lock"
PLATFORM_CACHE_DIRNAME = "platform-cache"
DISK_IMAGE_FILENAME = "img"


@dataclass(frozen=True, slots=True)
class RemoteLayout:
    """Where artifacts land on the bridged device."""

    work_dir: str = "/data/local/tmp/virt_raw"
    kernel_name: str = "aarch64_example"
    disk_name: str = "disk_img"
    crosvm: str = "/data/local/tmp/crosvm"

    @property
    def kernel_path(self) -> str:
        return f"{self.work_dir}/{self.kernel_name}"

    @property
    def disk_path(self) -> str:
        return f"{self.work_dir}/{self.disk_name}"


@dataclass(frozen=True, slots=True)
class Settings:
    project_dir: Path = field(default_factory=Path.cwd)
    target: BuildTarget = field(default_factory=BuildTarget)
    kernel: str = "aarch64"
    cargo: str = "cargo"
    rustc: str = "rustc"
    rustup: str = "rustup"
    qemu_binary: str = "qemu-system-aarch64"
    adb: str = "adb"
    pager: str = "less"
    qemu_args: tuple[str, ...] = ()
    remote: RemoteLayout = field(default_factory=RemoteLayout)

    def __post_init__(self) -> None:
        # cargo resolves --target-dir against its own cwd, which is project_dir.
        object.__setattr__(self, "project_dir", Path(self.project_dir).absolute())

    @property
    def target_root(self) -> Path:
        return self.project_dir / "target"

    @property
    def artifact_root(self) -> Path:
        return self.target_root / self.target.triple / self.target.mode

    @property
    def lock_path(self) -> Path:
        return self.project_dir / LOCK_FILENAME

    def validate(self) -> Settings:
        validate_target(self.target)
        if not self.kernel:
            raise ConfigurationError("Kernel crate name must not be empty.")
        return self

    def with_overrides(self, **changes: object) -> Settings:
        return replace(self, **changes).validate()

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        *,
        project_dir: Path | None = None,
    ) -> Settings:
        env = os.environ if environ is None else environ
        target = BuildTarget(
            triple=env.get("BOOTRIG_TARGET", DEFAULT_TRIPLE),
            mode=env.get("BOOTRIG_MODE", DEFAULT_MODE),  # type: ignore[arg-type]
        )
        settings = cls(
            project_dir=project_dir or Path.cwd(),
            target=target,
            kernel=env.get("BOOTRIG_KERNEL", "aarch64"),
            pager=env.get("PAGER") or "less",
            qemu_args=tuple(shlex.split(env.get("QEMU_ARGS", ""))),
        )
        return settings.validate()


def validate_target(target: BuildTarget) -> BuildTarget:
    if not target.triple:
        raise ConfigurationError("Target triple must not be empty.")
    if target.mode not in BUILD_MODES:
        raise ConfigurationError(
            f"Unrecognized build mode: {target.mode}",
            hint=f"Use one of: {', '.join(BUILD_MODES)}.",
            context={"mode": str(target.mode)},
        )
    return target


def parse_platform(name: str) -> Platform:
    if name not in PLATFORMS:
        raise ConfigurationError(
            f"Unknown platform: {name}",
            hint=f"Use one of: {', '.join(PLATFORMS)}.",
            context={"platform": name},
        )
    return name  # type: ignore[return-value]


def resolve_paths(settings: Settings, platform: Platform) -> ArtifactPaths:
    validate_target(settings.target)
    parse_platform(platform)
    root = settings.artifact_root
    platform_cache = settings.target_root / PLATFORM_CACHE_DIRNAME / platform
    return ArtifactPaths(
        intermediate=root / settings.kernel,
        raw_binary=root / f"{settings.kernel}_{platform}.bin",
        disk_image=disk_image_path(settings),
        stamp=root / f"{settings.kernel}.stamp.json",
        platform_cache=platform_cache,
        cached_image=platform_cache / settings.target.triple / settings.target.mode / settings.kernel,
        lock=settings.lock_path,
    )


def intermediate_image(settings: Settings) -> Path:
    """The shared linked image; identical for every platform."""
    validate_target(settings.target)
    return settings.artifact_root / settings.kernel


def disk_image_path(settings: Settings) -> Path:
    """The disk image is backend-agnostic and shared by both platforms."""
    validate_target(settings.target)
    return settings.artifact_root / DISK_IMAGE_FILENAME
