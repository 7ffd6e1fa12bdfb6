"""Shared test fixtures."""

from __future__ import annotations

import os
import re
import shutil
import struct
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from bootrig.config import Settings
from bootrig.process import ProcessResult

Responder = Callable[[tuple[str, ...]], ProcessResult | None]

KERNEL_LOAD_ADDR = 0x4008_0000
EM_AARCH64 = 183
PAGE = 0x1000


@dataclass
class FakeRunner:
    """Records every command; the first responder returning a result wins."""

    calls: list[tuple[str, ...]] = field(default_factory=list)
    inputs: list[str | None] = field(default_factory=list)
    envs: list[Mapping[str, str] | None] = field(default_factory=list)
    responders: list[Responder] = field(default_factory=list)

    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        command = tuple(argv)
        self.calls.append(command)
        self.inputs.append(input)
        self.envs.append(env)
        for responder in self.responders:
            outcome = responder(command)
            if outcome is not None:
                return outcome
        return ProcessResult(argv=command, returncode=0)

    def fail_when(self, predicate: Callable[[tuple[str, ...]], bool], returncode: int = 1) -> None:
        def _responder(command: tuple[str, ...]) -> ProcessResult | None:
            if predicate(command):
                return ProcessResult(argv=command, returncode=returncode, stderr="boom")
            return None

        self.responders.insert(0, _responder)

    def commands_for(self, program: str) -> list[tuple[str, ...]]:
        return [call for call in self.calls if Path(call[0]).name == program]


def build_elf(segments: Sequence[tuple[int, bytes]], *, entry: int = KERNEL_LOAD_ADDR) -> bytes:
    """Assemble a little-endian ELF64 aarch64 executable.

    Each ``(paddr, payload)`` becomes one PT_LOAD segment (and one PROGBITS
    section) at its own page-aligned file offset.
    """
    ehsize, phentsize, shentsize = 64, 56, 64
    names = [f".seg{i}" for i in range(len(segments))] + [".shstrtab"]
    shstrtab = b"\0"
    name_offsets = []
    for name in names:
        name_offsets.append(len(shstrtab))
        shstrtab += name.encode() + b"\0"

    data_offsets = [PAGE * (i + 1) for i in range(len(segments))]
    shstrtab_off = PAGE * (len(segments) + 1)
    shoff = (shstrtab_off + len(shstrtab) + 7) & ~7
    shnum = len(segments) + 2

    buf = bytearray(shoff + shnum * shentsize)
    buf[0:ehsize] = struct.pack(
        "<4sBBBBB7sHHIQQQIHHHHHH",
        b"\x7fELF", 2, 1, 1, 0, 0, b"\0" * 7,
        2, EM_AARCH64, 1, entry, ehsize, shoff, 0,
        ehsize, phentsize, len(segments), shentsize, shnum, shnum - 1,
    )
    for i, ((paddr, payload), offset) in enumerate(zip(segments, data_offsets)):
        assert len(payload) <= PAGE
        ph = ehsize + i * phentsize
        buf[ph:ph + phentsize] = struct.pack(
            "<IIQQQQQQ", 1, 0x7, offset, paddr, paddr, len(payload), len(payload), PAGE
        )
        buf[offset:offset + len(payload)] = payload

    buf[shstrtab_off:shstrtab_off + len(shstrtab)] = shstrtab
    # Index 0 stays the all-zero null section header.
    for i, ((paddr, payload), offset) in enumerate(zip(segments, data_offsets)):
        sh = shoff + (i + 1) * shentsize
        buf[sh:sh + shentsize] = struct.pack(
            "<IIQQQQIIQQ", name_offsets[i], 1, 0x6, paddr, offset, len(payload), 0, 0, 4, 0
        )
    sh = shoff + (shnum - 1) * shentsize
    buf[sh:sh + shentsize] = struct.pack(
        "<IIQQQQIIQQ", name_offsets[-1], 3, 0, 0, shstrtab_off, len(shstrtab), 0, 0, 1, 0
    )
    return bytes(buf)


def kernel_payload(platform: str) -> bytes:
    # `b .` followed by the tag a `--cfg platform` build would embed.
    return b"\x00\x00\x00\x14" + f"platform={platform}\0".encode()


_PLATFORM_CFG = re.compile(r'platform=\\"(\w+)\\"')


def fake_cargo(settings: Settings) -> Responder:
    """Stand-in for cargo: links a tagged ELF on build, wipes its target dir on clean."""

    def _responder(command: tuple[str, ...]) -> ProcessResult | None:
        if Path(command[0]).name != "cargo":
            return None
        if command[1] == "clean":
            if "--target-dir" in command:
                wiped = Path(command[command.index("--target-dir") + 1])
            else:
                wiped = Path(os.environ.get("CARGO_TARGET_DIR") or settings.target_root)
            shutil.rmtree(wiped, ignore_errors=True)
            return ProcessResult(argv=command, returncode=0)
        if command[1] == "build":
            target_dir = Path(command[command.index("--target-dir") + 1])
            match = _PLATFORM_CFG.search(command[command.index("--config") + 1])
            assert match is not None
            mode = "release" if "--release" in command else "debug"
            image = target_dir / settings.target.triple / mode / settings.kernel
            image.parent.mkdir(parents=True, exist_ok=True)
            image.write_bytes(build_elf([(KERNEL_LOAD_ADDR, kernel_payload(match.group(1)))]))
            return ProcessResult(argv=command, returncode=0)
        return None

    return _responder


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    project = tmp_path / "kernel"
    project.mkdir()
    return Settings(project_dir=project)


@pytest.fixture
def runner(settings: Settings) -> FakeRunner:
    fake = FakeRunner()
    fake.responders.append(fake_cargo(settings))
    return fake


@pytest.fixture
def tools_on_path(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pretend every external program is installed."""
    monkeypatch.setattr("bootrig.builder.shutil.which", lambda name: f"/usr/bin/{name}")


@pytest.fixture
def sysroot(tmp_path: Path, runner: FakeRunner) -> Path:
    """A Rust sysroot containing llvm-objdump, reported by `rustc --print sysroot`."""
    root = tmp_path / "sysroot"
    tool = root / "lib" / "rustlib" / "x86_64-unknown-linux-gnu" / "bin" / "llvm-objdump"
    tool.parent.mkdir(parents=True)
    tool.write_text("#!/bin/sh\n", encoding="utf-8")

    def _responder(command: tuple[str, ...]) -> ProcessResult | None:
        if command[:3] == ("rustc", "--print", "sysroot"):
            return ProcessResult(argv=command, returncode=0, stdout=f"{root}\n")
        if Path(command[0]).name == "llvm-objdump":
            flag = command[2]
            return ProcessResult(argv=command, returncode=0, stdout=f"objdump {flag} listing\n")
        return None

    runner.responders.append(_responder)
    return root
