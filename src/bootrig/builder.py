"""Platform-conditioned kernel builds via cargo.

Each platform compiles into its own cargo ``--target-dir`` so that switching
platforms never reuses objects compiled with the other platform's ``--cfg``
tag. The linked image is then published to the shared intermediate path
together with a build stamp naming the platform it was built for.
"""

from __future__ import annotations

import fcntl
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from bootrig.cache import BuildInputs, BuildStampStore, build_key
from bootrig.config import Settings, parse_platform, resolve_paths
from bootrig.errors import BuildLockedError, ToolchainError
from bootrig.models import BuildResult, Platform
from bootrig.process import ProcessRunner


@contextmanager
def build_lock(path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on *path* for the duration of a build."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a") as handle:
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            raise BuildLockedError(
                "Another build is running against this project.",
                hint="Wait for it to finish; concurrent builds share the intermediate image.",
                context={"lock": str(path)},
            ) from exc
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def platform_rustflags(platform: Platform) -> str:
    return f'build.rustflags="--cfg platform=\\"{platform}\\""'


@dataclass(slots=True)
class PlatformBuilder:
    settings: Settings
    runner: ProcessRunner

    def build_command(self, platform: Platform) -> list[str]:
        paths = resolve_paths(self.settings, platform)
        cmd = [self.settings.cargo, "build", "--target", self.settings.target.triple]
        if self.settings.target.mode == "release":
            cmd.append("--release")
        cmd.extend([
            "--target-dir", str(paths.platform_cache),
            "--config", platform_rustflags(platform),
        ])
        return cmd

    def build(self, platform: Platform, *, fresh: bool = False) -> BuildResult:
        parse_platform(platform)
        self._require_cargo()
        paths = resolve_paths(self.settings, platform)
        inputs = BuildInputs(
            triple=self.settings.target.triple,
            mode=self.settings.target.mode,
            platform=platform,
            kernel=self.settings.kernel,
        )
        store = BuildStampStore(paths.stamp)

        with build_lock(paths.lock):
            previous = store.load()
            if fresh and paths.platform_cache.exists():
                shutil.rmtree(paths.platform_cache)

            cmd = self.build_command(platform)
            result = self.runner.run(cmd, cwd=self.settings.project_dir, env=self._build_env())
            if not result.ok:
                raise ToolchainError(
                    "cargo build failed.",
                    hint="Check the compiler output above.",
                    context={
                        "operation": "build",
                        "platform": platform,
                        "returncode": str(result.returncode),
                        "stderr": result.stderr[:2000] if result.stderr else "",
                        "command": " ".join(cmd),
                    },
                )
            if not paths.cached_image.exists():
                raise ToolchainError(
                    "cargo build succeeded but produced no kernel image.",
                    hint="Check that the kernel crate name matches `--kernel`.",
                    context={"operation": "build", "expected": str(paths.cached_image)},
                )

            paths.intermediate.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(paths.cached_image, paths.intermediate)
            stamp = store.save(inputs=inputs, image=paths.intermediate)

        return BuildResult(
            platform=platform,
            image=paths.intermediate,
            stamp=paths.stamp,
            key=build_key(inputs),
            invalidated=previous is not None and previous.key != stamp.key,
        )

    def clean(self) -> None:
        self._require_cargo()
        target_root = self.settings.target_root
        # Builds always pass an explicit --target-dir, so clean must too.
        cmd = [self.settings.cargo, "clean", "--target-dir", str(target_root)]
        with build_lock(self.settings.lock_path):
            result = self.runner.run(cmd, cwd=self.settings.project_dir)
            if result.ok and target_root.exists():
                shutil.rmtree(target_root)
        if not result.ok:
            raise ToolchainError(
                "cargo clean failed.",
                context={
                    "operation": "clean",
                    "returncode": str(result.returncode),
                    "command": " ".join(cmd),
                },
            )

    def _build_env(self) -> dict[str, str]:
        env = dict(os.environ)
        # RUSTFLAGS takes precedence over build.rustflags and would drop the platform tag.
        env.pop("RUSTFLAGS", None)
        return env

    def _require_cargo(self) -> None:
        if shutil.which(self.settings.cargo) is None:
            raise ToolchainError(
                f"`{self.settings.cargo}` not found in PATH.",
                hint="Install the Rust toolchain via rustup.",
                context={"binary": self.settings.cargo},
            )
