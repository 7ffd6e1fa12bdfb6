"""Public package entrypoint for the bootrig kernel orchestration SDK."""

from .config import RemoteLayout, Settings, resolve_paths
from .errors import (
    BootrigError,
    BuildLockedError,
    ConfigurationError,
    DeploymentError,
    LaunchError,
    MissingArtifactError,
    StorageError,
    ToolchainError,
    TransformError,
)
from .models import (
    ArtifactPaths,
    BuildResult,
    BuildTarget,
    DeployResult,
    DeviceTopology,
    LaunchResult,
    PipelineState,
)
from .pipeline import Pipeline

__all__ = [
    "ArtifactPaths",
    "BootrigError",
    "BuildLockedError",
    "BuildResult",
    "BuildTarget",
    "ConfigurationError",
    "DeployResult",
    "DeploymentError",
    "DeviceTopology",
    "LaunchError",
    "LaunchResult",
    "MissingArtifactError",
    "Pipeline",
    "PipelineState",
    "RemoteLayout",
    "Settings",
    "StorageError",
    "ToolchainError",
    "TransformError",
    "resolve_paths",
]
