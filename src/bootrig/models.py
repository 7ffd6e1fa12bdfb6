"""Core typed dataclasses for build targets, artifacts and launch results."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Literal

Platform = Literal["qemu", "crosvm"]
BuildMode = Literal["debug", "release"]
Transport = Literal["mmio", "pci"]

DEFAULT_TRIPLE = "aarch64-unknown-none"
DEFAULT_MODE: BuildMode = "release"

PLATFORMS: tuple[Platform, ...] = ("qemu", "crosvm")
BUILD_MODES: tuple[BuildMode, ...] = ("debug", "release")
TRANSPORTS: tuple[Transport, ...] = ("mmio", "pci")

SECTOR_SIZE = 512
DISK_SECTORS = 32
DISK_IMAGE_SIZE = SECTOR_SIZE * DISK_SECTORS


class PipelineState(StrEnum):
    """Lifecycle of one orchestration run."""

    NOT_BUILT = "not_built"
    BUILT = "built"
    TRANSFORMED = "transformed"
    DEPLOYED = "deployed"
    LAUNCHED = "launched"


@dataclass(frozen=True, slots=True)
class BuildTarget:
    triple: str = DEFAULT_TRIPLE
    mode: BuildMode = DEFAULT_MODE


@dataclass(frozen=True, slots=True)
class ArtifactPaths:
    """Filesystem layout for one (target, platform) pair."""

    intermediate: Path
    raw_binary: Path
    disk_image: Path
    stamp: Path
    platform_cache: Path
    cached_image: Path
    lock: Path


@dataclass(frozen=True, slots=True)
class DeviceTopology:
    """Virtual device wiring handed to the emulator.

    Device names carry the transport suffix (``-device`` for MMIO, ``-pci`` for
    the peripheral bus); ``globals`` holds ``-global`` properties.
    """

    transport: Transport
    block_device: str
    gpu_device: str
    serial_bus_device: str
    console_device: str = "virtconsole"
    serial: str = "chardev:char0"
    chardev: str = "stdio,id=char0,mux=on"
    globals: tuple[str, ...] = ()

    def device_names(self) -> tuple[str, ...]:
        return (self.block_device, self.gpu_device, self.serial_bus_device)


@dataclass(frozen=True, slots=True)
class BuildResult:
    platform: Platform
    image: Path
    stamp: Path
    key: str
    invalidated: bool = False


@dataclass(frozen=True, slots=True)
class LaunchResult:
    backend: str
    returncode: int
    command: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class DeployResult:
    backend: str
    remote_dir: str
    remote_kernel: str
    remote_disk: str
    returncode: int
    commands: tuple[tuple[str, ...], ...] = field(default_factory=tuple)
