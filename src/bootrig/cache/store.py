"""Build stamp recording which platform produced the shared intermediate image."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from pathlib import Path

from bootrig.cache.keys import BuildInputs, _to_payload, build_key
from bootrig.errors import TransformError


@dataclass(frozen=True, slots=True)
class BuildStamp:
    key: str
    inputs: dict[str, str]
    image_sha256: str

    @property
    def platform(self) -> str:
        return self.inputs.get("platform", "")


class BuildStampStore:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> BuildStamp | None:
        if not self.path.exists():
            return None
        manifest = self._read_manifest()
        key = manifest.get("key")
        inputs = manifest.get("inputs")
        digest = manifest.get("image_sha256")
        if not isinstance(key, str) or not isinstance(inputs, dict) or not isinstance(digest, str):
            raise TransformError(
                "Build stamp has invalid structure.",
                hint="Run `bootrig clean` and rebuild.",
                context={"operation": "stamp_load", "path": str(self.path)},
            )
        return BuildStamp(key=key, inputs={str(k): str(v) for k, v in inputs.items()}, image_sha256=digest)

    def save(self, *, inputs: BuildInputs, image: Path) -> BuildStamp:
        stamp = BuildStamp(
            key=build_key(inputs),
            inputs=_to_payload(inputs),
            image_sha256=file_sha256(image),
        )
        self.path.parent.mkdir(parents=True, exist_ok=True)
        manifest = {
            "key": stamp.key,
            "inputs": stamp.inputs,
            "image_sha256": stamp.image_sha256,
        }
        self.path.write_text(
            json.dumps(manifest, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        return stamp

    def verify(self, *, expected: BuildInputs, image: Path) -> BuildStamp:
        """Check that *image* is the one a build for *expected* published."""
        stamp = self.load()
        if stamp is None:
            raise TransformError(
                "No build stamp found for the intermediate image.",
                hint="Build the kernel for this platform first.",
                context={"operation": "stamp_verify", "path": str(self.path)},
            )
        if stamp.key != build_key(expected):
            raise TransformError(
                "Intermediate image was built for a different configuration.",
                hint=f"Rebuild for platform `{expected.platform}` before transforming.",
                context={
                    "operation": "stamp_verify",
                    "expected_platform": expected.platform,
                    "stamped_platform": stamp.platform,
                },
            )
        if not image.exists() or stamp.image_sha256 != file_sha256(image):
            raise TransformError(
                "Intermediate image does not match its build stamp.",
                hint="Another build may have overwritten it; rebuild.",
                context={"operation": "stamp_verify", "image": str(image)},
            )
        return stamp

    def _read_manifest(self) -> dict[str, object]:
        try:
            parsed = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise TransformError(
                "Build stamp is not valid JSON.",
                hint="Run `bootrig clean` and rebuild.",
                context={"operation": "stamp_load", "path": str(self.path)},
            ) from exc
        if not isinstance(parsed, dict):
            raise TransformError(
                "Build stamp has invalid structure.",
                hint="Run `bootrig clean` and rebuild.",
                context={"operation": "stamp_load", "path": str(self.path)},
            )
        return parsed


def file_sha256(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()
