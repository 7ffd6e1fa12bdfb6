"""Command-line entry point.

Usage:
    bootrig env
    bootrig build --platform qemu
    bootrig asm | sym | header
    bootrig qemu [-- EXTRA_QEMU_ARGS...]
    bootrig qemu-pci [-- EXTRA_QEMU_ARGS...]
    bootrig crosvm
    bootrig img
    bootrig clean
"""

from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from bootrig.config import Settings, parse_platform
from bootrig.errors import BootrigError, LaunchError
from bootrig.models import BUILD_MODES, PLATFORMS, BuildTarget
from bootrig.observability import StructuredLogger
from bootrig.pipeline import Pipeline
from bootrig.process import ProcessRunner, SubprocessRunner

EXIT_INTERRUPTED = 130


def _stderr_sink(record: dict[str, Any]) -> None:
    scope = "/".join(str(part) for part in (record["operation"], record.get("platform")) if part)
    print(f"[{scope}] {record['step']}: {record['message']}", file=sys.stderr)


def _extra_args(values: Sequence[str]) -> list[str]:
    extra = list(values)
    if extra and extra[0] == "--":
        extra = extra[1:]
    return extra


def cmd_env(pipeline: Pipeline, args: argparse.Namespace) -> int:
    pipeline.setup_environment()
    return 0


def cmd_build(pipeline: Pipeline, args: argparse.Namespace) -> int:
    platform = parse_platform(args.platform)
    pipeline.build(platform, fresh=args.fresh)
    raw = pipeline.transform(platform)
    print(f"Built {raw}")
    return 0


def cmd_introspect(pipeline: Pipeline, args: argparse.Namespace) -> int:
    pipeline.introspect(args.command)
    return 0


def cmd_clean(pipeline: Pipeline, args: argparse.Namespace) -> int:
    pipeline.clean()
    return 0


def cmd_img(pipeline: Pipeline, args: argparse.Namespace) -> int:
    print(f"Disk image at {pipeline.provision_disk()}")
    return 0


def cmd_qemu(pipeline: Pipeline, args: argparse.Namespace) -> int:
    transport = "pci" if args.command == "qemu-pci" else "mmio"
    result = pipeline.run_qemu(
        transport=transport,
        extra_args=_extra_args(args.extra),
        fresh=args.fresh,
    )
    return result.returncode


def cmd_crosvm(pipeline: Pipeline, args: argparse.Namespace) -> int:
    result = pipeline.deploy_crosvm(fresh=args.fresh)
    return result.returncode


COMMANDS = {
    "env": cmd_env,
    "build": cmd_build,
    "asm": cmd_introspect,
    "sym": cmd_introspect,
    "header": cmd_introspect,
    "clean": cmd_clean,
    "img": cmd_img,
    "qemu": cmd_qemu,
    "run": cmd_qemu,
    "qemu-pci": cmd_qemu,
    "crosvm": cmd_crosvm,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bootrig",
        description="Build and boot a bare-metal aarch64 kernel on QEMU or crosvm",
    )
    parser.add_argument("--project-dir", type=Path, default=None, help="Kernel crate directory")
    parser.add_argument("--target", default=None, help="Target triple")
    parser.add_argument("--mode", choices=BUILD_MODES, default=None, help="Build mode")
    parser.add_argument("--kernel", default=None, help="Kernel binary (crate) name")
    parser.add_argument("--log-json", type=Path, default=None, help="Write step logs as JSON lines")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not echo step logs")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("env", help="Install rustup components and the target")

    build_p = sub.add_parser("build", help="Build and transform the kernel for one platform")
    build_p.add_argument("--platform", choices=PLATFORMS, required=True)
    build_p.add_argument("--fresh", action="store_true", help="Discard the platform's build cache first")

    sub.add_parser("asm", help="Disassemble the built kernel image")
    sub.add_parser("sym", help="List the built kernel image's symbols")
    sub.add_parser("header", help="Dump all headers of the built kernel image")
    sub.add_parser("clean", help="Discard all build output")
    sub.add_parser("img", help="Create the shared disk image if missing")

    for name, help_text in (
        ("qemu", "Boot on QEMU with virtio-mmio devices"),
        ("run", "Alias for qemu"),
        ("qemu-pci", "Boot on QEMU with virtio-pci devices"),
    ):
        qemu_p = sub.add_parser(name, help=help_text)
        qemu_p.add_argument("--fresh", action="store_true", help="Discard the platform's build cache first")
        qemu_p.add_argument("extra", nargs=argparse.REMAINDER, help="Arguments passed to QEMU verbatim")

    crosvm_p = sub.add_parser("crosvm", help="Push to the adb device and boot on crosvm")
    crosvm_p.add_argument("--fresh", action="store_true", help="Discard the platform's build cache first")
    return parser


def settings_from_args(args: argparse.Namespace) -> Settings:
    settings = Settings.from_env(project_dir=args.project_dir)
    overrides: dict[str, object] = {}
    if args.target is not None or args.mode is not None:
        overrides["target"] = BuildTarget(
            triple=args.target or settings.target.triple,
            mode=args.mode or settings.target.mode,
        )
    if args.kernel is not None:
        overrides["kernel"] = args.kernel
    return settings.with_overrides(**overrides) if overrides else settings


def exit_code_for(exc: BootrigError) -> int:
    if isinstance(exc, LaunchError) and exc.returncode is not None:
        if exc.returncode < 0:
            return 128 - exc.returncode
        return exc.returncode
    return 1


def main(argv: Sequence[str] | None = None, *, runner: ProcessRunner | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logger = StructuredLogger(sink=None if args.quiet else _stderr_sink)
    try:
        pipeline = Pipeline(
            settings=settings_from_args(args),
            runner=runner or SubprocessRunner(),
            logger=logger,
        )
        return COMMANDS[args.command](pipeline, args)
    except BootrigError as exc:
        print(f"error[{exc.code}]: {exc}", file=sys.stderr)
        return exit_code_for(exc)
    except KeyboardInterrupt:
        return EXIT_INTERRUPTED
    finally:
        if args.log_json is not None:
            logger.to_json_lines(args.log_json)
