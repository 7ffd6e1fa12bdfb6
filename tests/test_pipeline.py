from pathlib import Path

import pytest

from bootrig.config import Settings, disk_image_path, resolve_paths
from bootrig.errors import ConfigurationError, DeploymentError, LaunchError, MissingArtifactError
from bootrig.models import DISK_IMAGE_SIZE, PipelineState
from bootrig.pipeline import Pipeline
from tests.conftest import FakeRunner

pytestmark = pytest.mark.usefixtures("tools_on_path")


def test_transform_requires_a_build(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)

    with pytest.raises(ConfigurationError, match="Illegal pipeline transition"):
        pipeline.transform("qemu")

    assert pipeline.state is PipelineState.NOT_BUILT


def test_transform_requires_matching_platform(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)
    pipeline.build("crosvm")

    with pytest.raises(ConfigurationError, match="another platform"):
        pipeline.transform("qemu")

    assert pipeline.state is PipelineState.BUILT
    assert pipeline.platform == "crosvm"


def test_unknown_platform_is_rejected(settings: Settings, runner: FakeRunner) -> None:
    with pytest.raises(ConfigurationError):
        Pipeline(settings=settings, runner=runner).build("bochs")  # type: ignore[arg-type]

    assert runner.calls == []


def test_run_qemu_builds_transforms_provisions_and_launches(
    settings: Settings, runner: FakeRunner
) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)

    result = pipeline.run_qemu(transport="pci", extra_args=["-s"])

    paths = resolve_paths(settings, "qemu")
    assert pipeline.state is PipelineState.LAUNCHED
    assert b"platform=qemu" in paths.raw_binary.read_bytes()
    assert disk_image_path(settings).stat().st_size == DISK_IMAGE_SIZE
    assert [Path(call[0]).name for call in runner.calls] == ["cargo", "qemu-system-aarch64"]
    assert result.command[-1] == "-s"
    assert "virtio-blk-pci,drive=x0" in result.command
    assert str(paths.raw_binary) in result.command


def test_qemu_args_from_settings_precede_command_line_extras(
    settings: Settings, runner: FakeRunner
) -> None:
    pipeline = Pipeline(settings=settings.with_overrides(qemu_args=("-m", "1G")), runner=runner)

    result = pipeline.run_qemu(extra_args=["-S"])

    assert result.command[-3:] == ("-m", "1G", "-S")


def test_failed_launch_is_logged_and_propagated(settings: Settings, runner: FakeRunner) -> None:
    runner.fail_when(lambda cmd: cmd[0] == "qemu-system-aarch64", returncode=2)
    pipeline = Pipeline(settings=settings, runner=runner)

    with pytest.raises(LaunchError):
        pipeline.run_qemu()

    assert pipeline.state is PipelineState.TRANSFORMED
    errors = [record for record in pipeline.logger.records if record["level"] == "error"]
    assert errors[-1]["operation"] == "launch"
    assert errors[-1]["extra"]["code"] == "E_LAUNCH"


def test_deploy_crosvm_pushes_then_launches(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)

    result = pipeline.deploy_crosvm()

    assert pipeline.state is PipelineState.LAUNCHED
    assert [call[1] for call in runner.commands_for("adb")] == ["shell", "push", "push", "shell"]
    assert runner.calls[-1][-1].startswith("/data/local/tmp/crosvm ")
    assert result.commands[1][2] == str(resolve_paths(settings, "crosvm").raw_binary)


def test_failed_push_never_reaches_launch(settings: Settings, runner: FakeRunner) -> None:
    runner.fail_when(lambda cmd: cmd[0] == "adb" and cmd[-1].endswith("disk_img"))
    pipeline = Pipeline(settings=settings, runner=runner)

    with pytest.raises(DeploymentError):
        pipeline.deploy_crosvm()

    assert pipeline.state is PipelineState.TRANSFORMED
    assert all("crosvm --log-level" not in call[-1] for call in runner.calls)


def test_clean_discards_artifacts_and_state(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)
    pipeline.prepare("qemu")

    pipeline.clean()

    assert pipeline.state is PipelineState.NOT_BUILT
    assert not settings.target_root.exists()
    with pytest.raises(MissingArtifactError):
        pipeline.introspect("sym", page=False)


def test_disk_is_shared_and_kept_across_platforms(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)
    _, disk = pipeline.prepare("qemu")
    disk.write_bytes(b"guest wrote here")

    _, again = pipeline.prepare("crosvm")

    assert again == disk
    assert disk.read_bytes() == b"guest wrote here"
    messages = [r["message"] for r in pipeline.logger.records if r["operation"] == "provision_disk"]
    assert "Created disk image." in messages
    assert "Disk image already present." in messages


def test_step_logs_are_scoped_by_platform(settings: Settings, runner: FakeRunner) -> None:
    pipeline = Pipeline(settings=settings, runner=runner)
    pipeline.run_qemu()

    records = pipeline.logger.records_for_platform("qemu")
    assert {record["operation"] for record in records} == {"build", "transform", "launch"}
    assert all(record["level"] == "info" for record in records)
