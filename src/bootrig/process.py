"""Blocking external-process execution with signal forwarding.

Every external program (cargo, rustup, llvm-objdump, the pager, QEMU, adb) is
started through a :class:`ProcessRunner`. The pipeline is strictly sequential,
so the contract is just spawn, wait, and forward termination signals that the
orchestrator receives to the running child.
"""

from __future__ import annotations

import signal
import subprocess
import threading
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

FORWARDED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass(frozen=True, slots=True)
class ProcessResult:
    argv: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(Protocol):
    def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
        input: str | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        """Run *argv* to completion and return its exit status."""


@dataclass(slots=True)
class SubprocessRunner:
    """Runs children with ``subprocess.Popen`` in the foreground.

    Without ``capture`` the child inherits the terminal, which is what the
    emulator console and remote shell need.
    """

    forward_signals: bool = True

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
        pipe = subprocess.PIPE if capture else None
        proc = subprocess.Popen(
            command,
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env) if env is not None else None,
            stdin=subprocess.PIPE if input is not None else None,
            stdout=pipe,
            stderr=pipe,
            text=True,
        )
        with self._forwarding(proc):
            stdout, stderr = proc.communicate(input=input)
        return ProcessResult(
            argv=command,
            returncode=proc.returncode,
            stdout=stdout or "",
            stderr=stderr or "",
        )

    @contextmanager
    def _forwarding(self, proc: subprocess.Popen[str]) -> Iterator[None]:
        # Signal handlers can only be installed from the main thread.
        if not self.forward_signals or threading.current_thread() is not threading.main_thread():
            yield
            return

        def _forward(signum: int, _frame: object) -> None:
            if proc.poll() is None:
                proc.send_signal(signum)

        previous = {sig: signal.signal(sig, _forward) for sig in FORWARDED_SIGNALS}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
