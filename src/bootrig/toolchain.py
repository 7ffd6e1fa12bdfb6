"""Rust toolchain discovery and environment setup.

The LLVM binutils shipped by the ``llvm-tools-preview`` rustup component live
somewhere under the active toolchain's sysroot; their exact location depends on
the host triple, so they are searched for rather than computed.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from bootrig.errors import ToolchainError
from bootrig.process import ProcessRunner

RUSTUP_COMPONENTS = ("llvm-tools-preview", "rustfmt")


@dataclass(slots=True)
class Toolchain:
    runner: ProcessRunner
    rustc: str = "rustc"
    rustup: str = "rustup"

    def sysroot(self) -> Path:
        self._require(self.rustc)
        result = self.runner.run([self.rustc, "--print", "sysroot"], capture=True)
        if not result.ok or not result.stdout.strip():
            raise ToolchainError(
                "Could not determine the Rust sysroot.",
                context={
                    "operation": "sysroot",
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[:2000],
                },
            )
        return Path(result.stdout.strip())

    def llvm_tool(self, name: str) -> Path:
        root = self.sysroot()
        for candidate in sorted(root.rglob(name)):
            if candidate.is_file():
                return candidate
        raise ToolchainError(
            f"`{name}` not found in the Rust sysroot.",
            hint="Run `bootrig env` to install the llvm-tools-preview component.",
            context={"sysroot": str(root)},
        )

    def setup_environment(self, triple: str) -> None:
        self._require(self.rustup)
        steps = (
            ("component", [self.rustup, "component", "add", *RUSTUP_COMPONENTS]),
            ("target", [self.rustup, "target", "add", triple]),
        )
        for step, cmd in steps:
            result = self.runner.run(cmd)
            if not result.ok:
                raise ToolchainError(
                    "rustup failed while setting up the environment.",
                    context={
                        "operation": "setup_environment",
                        "step": step,
                        "returncode": str(result.returncode),
                        "command": " ".join(cmd),
                    },
                )

    def _require(self, binary: str) -> None:
        if shutil.which(binary) is None:
            raise ToolchainError(
                f"`{binary}` not found in PATH.",
                hint="Install the Rust toolchain via rustup.",
                context={"binary": binary},
            )
