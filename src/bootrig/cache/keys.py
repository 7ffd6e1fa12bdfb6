"""Build key derivation."""

from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass
from typing import Any

from bootrig.models import Platform


@dataclass(frozen=True, slots=True)
class BuildInputs:
    """Everything that decides which kernel image cargo links.

    The platform tag is injected through rustflags, which the compiler's own
    incremental cache does not key on, so it is part of the key explicitly.
    """

    triple: str
    mode: str
    platform: Platform
    kernel: str


def build_key(inputs: BuildInputs) -> str:
    canonical = json.dumps(_to_payload(inputs), sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _to_payload(inputs: BuildInputs) -> dict[str, Any]:
    return {
        "triple": inputs.triple,
        "mode": inputs.mode,
        "platform": inputs.platform,
        "kernel": inputs.kernel,
    }
