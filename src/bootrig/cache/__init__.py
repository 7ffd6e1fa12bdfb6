"""Platform-keyed build cache APIs."""

from .keys import BuildInputs, build_key
from .store import BuildStamp, BuildStampStore, file_sha256

__all__ = ["BuildInputs", "BuildStamp", "BuildStampStore", "build_key", "file_sha256"]
