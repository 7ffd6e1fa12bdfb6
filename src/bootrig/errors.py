"""Typed error model with stable, machine-readable error codes.

One subclass per failure class of the build, transform, provisioning and
launch stages; `LaunchError` also carries the emulator's exit status so the
CLI can exit with it.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum


class ErrorCode(StrEnum):
    """Stable error identifiers used across the pipeline and the CLI."""

    CONFIGURATION = "E_CONFIGURATION"
    TOOLCHAIN = "E_TOOLCHAIN"
    TRANSFORM = "E_TRANSFORM"
    STORAGE = "E_STORAGE"
    MISSING_ARTIFACT = "E_MISSING_ARTIFACT"
    LAUNCH = "E_LAUNCH"
    DEPLOYMENT = "E_DEPLOYMENT"
    BUILD_LOCKED = "E_BUILD_LOCKED"


class BootrigError(Exception):
    """Base error class that carries code, optional hint, and context."""

    code: str
    hint: str | None
    context: Mapping[str, str]

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code.value
        self.hint = hint
        self.context = dict(context or {})

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.hint:
            parts.append(f"Hint: {self.hint}")
        if self.context:
            for k, v in self.context.items():
                if v:
                    parts.append(f"  {k}: {v}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "code": self.code,
            "message": str(self),
            "context": dict(self.context),
        }
        if self.hint is not None:
            payload["hint"] = self.hint
        return payload


class ConfigurationError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.CONFIGURATION, hint=hint, context=context)


class ToolchainError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TOOLCHAIN, hint=hint, context=context)


class TransformError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.TRANSFORM, hint=hint, context=context)


class StorageError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.STORAGE, hint=hint, context=context)


class MissingArtifactError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.MISSING_ARTIFACT, hint=hint, context=context)


class LaunchError(BootrigError):
    """Local emulator failed to start or exited abnormally.

    ``returncode`` is the child's exit status, or ``None`` when the emulator
    never started.
    """

    returncode: int | None

    def __init__(
        self,
        message: str,
        *,
        returncode: int | None = None,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        merged = dict(context or {})
        if returncode is not None:
            merged.setdefault("returncode", str(returncode))
        super().__init__(message, code=ErrorCode.LAUNCH, hint=hint, context=merged)
        self.returncode = returncode


class DeploymentError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.DEPLOYMENT, hint=hint, context=context)


class BuildLockedError(BootrigError):
    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        context: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(message, code=ErrorCode.BUILD_LOCKED, hint=hint, context=context)


__all__ = [
    "BootrigError",
    "BuildLockedError",
    "ConfigurationError",
    "DeploymentError",
    "ErrorCode",
    "LaunchError",
    "MissingArtifactError",
    "StorageError",
    "ToolchainError",
    "TransformError",
]
