"""Read-only objdump views over the intermediate kernel image."""

from __future__ import annotations

import shlex
import shutil
import sys
from dataclasses import dataclass, field
from typing import Literal, TextIO

from bootrig.config import Settings, intermediate_image
from bootrig.errors import MissingArtifactError, ToolchainError
from bootrig.process import ProcessRunner
from bootrig.toolchain import Toolchain

View = Literal["asm", "sym", "header"]

VIEW_FLAGS: dict[View, str] = {
    "asm": "-d",
    "sym": "-t",
    "header": "-x",
}

OBJDUMP = "llvm-objdump"


@dataclass(slots=True)
class Introspector:
    settings: Settings
    runner: ProcessRunner
    out: TextIO = field(default_factory=lambda: sys.stdout)

    def render(self, view: View) -> str:
        """Return the objdump listing for *view* without paging it."""
        image = intermediate_image(self.settings)
        if not image.exists():
            raise MissingArtifactError(
                "No kernel image has been built yet.",
                hint="Run `bootrig build --platform <qemu|crosvm>` first.",
                context={"image": str(image), "view": view},
            )
        objdump = Toolchain(
            runner=self.runner,
            rustc=self.settings.rustc,
            rustup=self.settings.rustup,
        ).llvm_tool(OBJDUMP)
        arch = self.settings.target.triple.split("-", 1)[0]
        cmd = [str(objdump), f"--arch-name={arch}", VIEW_FLAGS[view], str(image)]
        result = self.runner.run(cmd, capture=True)
        if not result.ok:
            raise ToolchainError(
                "llvm-objdump failed.",
                context={
                    "view": view,
                    "returncode": str(result.returncode),
                    "stderr": result.stderr[:2000],
                    "command": " ".join(cmd),
                },
            )
        return result.stdout

    def show(self, view: View) -> str:
        listing = self.render(view)
        if not self.out.isatty():
            self.out.write(listing)
            return listing
        pager = shlex.split(self.settings.pager)
        if not pager or shutil.which(pager[0]) is None:
            raise ToolchainError(
                f"Pager not found: {self.settings.pager}",
                hint="Install `less` or point PAGER at an installed pager.",
                context={"pager": self.settings.pager, "view": view},
            )
        result = self.runner.run(pager, input=listing)
        if not result.ok:
            raise ToolchainError(
                "Pager exited abnormally.",
                context={
                    "pager": self.settings.pager,
                    "view": view,
                    "returncode": str(result.returncode),
                },
            )
        return listing
