"""QEMU launch adapter.

Boots the raw kernel binary on ``-machine virt`` with one virtio block device
bound to the shared disk image, one virtio GPU, and a virtio console
multiplexed with the serial port on stdio. Two transport profiles exist:
``mmio`` (virtio-mmio, the default) and ``pci``.
"""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from bootrig.errors import ConfigurationError, LaunchError
from bootrig.models import TRANSPORTS, DeviceTopology, LaunchResult, Transport
from bootrig.process import ProcessRunner

MMIO_TOPOLOGY = DeviceTopology(
    transport="mmio",
    block_device="virtio-blk-device",
    gpu_device="virtio-gpu-device",
    serial_bus_device="virtio-serial-device",
    globals=("virtio-mmio.force-legacy=false",),
)

PCI_TOPOLOGY = DeviceTopology(
    transport="pci",
    block_device="virtio-blk-pci",
    gpu_device="virtio-gpu-pci",
    serial_bus_device="virtio-serial-pci",
)


def topology_for(transport: Transport) -> DeviceTopology:
    if transport == "mmio":
        return MMIO_TOPOLOGY
    if transport == "pci":
        return PCI_TOPOLOGY
    raise ConfigurationError(
        f"Unknown transport profile: {transport}",
        hint=f"Use one of: {', '.join(TRANSPORTS)}.",
        context={"transport": str(transport)},
    )


def topology_args(topology: DeviceTopology, *, kernel: Path, disk: Path) -> list[str]:
    cmd: list[str] = [
        "-machine", "virt",
        "-cpu", "max",
        "-serial", topology.serial,
        "-kernel", str(kernel),
    ]
    for prop in topology.globals:
        cmd.extend(["-global", prop])
    cmd.extend([
        "-nic", "none",
        "-drive", f"file={disk},if=none,format=raw,id=x0",
        "-device", f"{topology.block_device},drive=x0",
        "-device", topology.gpu_device,
        "-device", f"{topology.serial_bus_device},id=virtio-serial0",
        "-chardev", topology.chardev,
        "-device", f"{topology.console_device},chardev=char0",
    ])
    return cmd


@dataclass(slots=True)
class QemuLaunchAdapter:
    runner: ProcessRunner
    name: str = "qemu"
    qemu_binary: str = "qemu-system-aarch64"
    extra_args: list[str] = field(default_factory=list)

    def command(
        self,
        *,
        kernel: Path,
        disk: Path,
        transport: Transport = "mmio",
        extra_args: Sequence[str] = (),
    ) -> list[str]:
        topology = topology_for(transport)
        # Pass-through args go last and are never interpreted.
        return [
            self.qemu_binary,
            *topology_args(topology, kernel=kernel, disk=disk),
            *self.extra_args,
            *extra_args,
        ]

    def launch(
        self,
        *,
        kernel: Path,
        disk: Path,
        transport: Transport = "mmio",
        extra_args: Sequence[str] = (),
    ) -> LaunchResult:
        cmd = self.command(kernel=kernel, disk=disk, transport=transport, extra_args=extra_args)

        if shutil.which(self.qemu_binary) is None:
            raise LaunchError(
                f"QEMU binary not found: {self.qemu_binary}",
                hint="Install QEMU with aarch64 system emulation and ensure it is in PATH.",
                context={"binary": self.qemu_binary},
            )

        result = self.runner.run(cmd)
        if result.returncode != 0:
            raise LaunchError(
                "QEMU exited abnormally.",
                returncode=result.returncode,
                context={
                    "transport": transport,
                    "command": " ".join(cmd),
                },
            )
        return LaunchResult(backend=self.name, returncode=result.returncode, command=tuple(cmd))
