"""crosvm deployment adapter for an adb-attached device.

Pushes the raw kernel and the disk image into a fixed working directory on the
device and runs crosvm there without its sandbox. Every step blocks and a
failed step aborts the rest, so a partially transferred artifact set is never
launched.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from bootrig.config import RemoteLayout
from bootrig.errors import DeploymentError
from bootrig.models import DeployResult
from bootrig.process import ProcessRunner


def crosvm_command(remote: RemoteLayout) -> str:
    return " ".join([
        remote.crosvm,
        "--log-level=trace",
        "--extended-status",
        "run",
        "--disable-sandbox",
        "--serial=stdout,hardware=serial,num=1",
        f"--rwdisk={remote.disk_path}",
        f"--bios={remote.kernel_path}",
    ])


@dataclass(slots=True)
class CrosvmDeployAdapter:
    runner: ProcessRunner
    name: str = "crosvm"
    adb: str = "adb"
    remote: RemoteLayout = field(default_factory=RemoteLayout)

    def push_plan(self, *, kernel: Path, disk: Path) -> list[tuple[str, list[str]]]:
        return [
            ("mkdir", [self.adb, "shell", f"mkdir -p {self.remote.work_dir}"]),
            ("push_kernel", [self.adb, "push", str(kernel), self.remote.kernel_path]),
            ("push_disk", [self.adb, "push", str(disk), self.remote.disk_path]),
        ]

    def run_command(self) -> list[str]:
        return [self.adb, "shell", crosvm_command(self.remote)]

    def push(self, *, kernel: Path, disk: Path) -> tuple[tuple[str, ...], ...]:
        """Create the remote working directory and transfer both artifacts."""
        self._ensure_adb()
        for artifact in (kernel, disk):
            if not artifact.exists():
                raise DeploymentError(
                    "Local artifact missing; nothing was pushed.",
                    context={"step": "check", "artifact": str(artifact)},
                )
        executed: list[tuple[str, ...]] = []
        for step, cmd in self.push_plan(kernel=kernel, disk=disk):
            self._run_step(step, cmd)
            executed.append(tuple(cmd))
        return tuple(executed)

    def launch(self) -> tuple[str, ...]:
        """Run crosvm on the device against the previously pushed artifacts."""
        self._ensure_adb()
        cmd = self.run_command()
        self._run_step("run", cmd)
        return tuple(cmd)

    def deploy(self, *, kernel: Path, disk: Path) -> DeployResult:
        pushed = self.push(kernel=kernel, disk=disk)
        launched = self.launch()
        return DeployResult(
            backend=self.name,
            remote_dir=self.remote.work_dir,
            remote_kernel=self.remote.kernel_path,
            remote_disk=self.remote.disk_path,
            returncode=0,
            commands=(*pushed, launched),
        )

    def _run_step(self, step: str, cmd: list[str]) -> None:
        result = self.runner.run(cmd)
        if result.returncode != 0:
            raise DeploymentError(
                f"Deployment step `{step}` failed.",
                hint="Check the device connection with `adb devices`.",
                context={
                    "step": step,
                    "returncode": str(result.returncode),
                    "command": " ".join(cmd),
                },
            )

    def _ensure_adb(self) -> None:
        if shutil.which(self.adb) is None:
            raise DeploymentError(
                f"adb not found: {self.adb}",
                hint="Install Android platform-tools and ensure `adb` is in PATH.",
                context={"binary": self.adb},
            )
