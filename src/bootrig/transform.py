"""Linked ELF image → raw flat binary.

Produces the same bytes as ``objcopy -O binary``: the file contents of every
loadable segment, placed at its offset from the lowest load address, with gaps
zero-filled. Headers, symbol tables and relocations are dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from elftools.common.exceptions import ELFError
from elftools.elf.elffile import ELFFile
from elftools.elf.segments import Segment

from bootrig.cache import BuildInputs, BuildStampStore
from bootrig.config import Settings, resolve_paths
from bootrig.errors import TransformError
from bootrig.models import Platform


@dataclass(frozen=True, slots=True)
class LoadSegment:
    paddr: int
    data: bytes


def load_segments(image: Path) -> tuple[LoadSegment, ...]:
    if not image.exists():
        raise TransformError(
            "Intermediate kernel image not found.",
            hint="Build the kernel first.",
            context={"image": str(image)},
        )
    try:
        with image.open("rb") as f:
            elf = ELFFile(f)
            segments = tuple(
                LoadSegment(paddr=seg["p_paddr"], data=_segment_data(image, seg))
                for seg in elf.iter_segments()
                if seg["p_type"] == "PT_LOAD" and seg["p_filesz"] > 0
            )
    except ELFError as exc:
        raise TransformError(
            "Intermediate kernel image is not a valid ELF file.",
            context={"image": str(image), "reason": str(exc)},
        ) from exc
    if not segments:
        raise TransformError(
            "Intermediate kernel image has no loadable segments.",
            context={"image": str(image)},
        )
    return segments


def _segment_data(image: Path, segment: Segment) -> bytes:
    data = segment.data()
    # pyelftools returns whatever is left of the file for a segment that runs past EOF.
    if len(data) != segment["p_filesz"]:
        raise TransformError(
            "Intermediate kernel image is truncated.",
            hint="Rebuild the kernel.",
            context={
                "image": str(image),
                "paddr": hex(segment["p_paddr"]),
                "expected": str(segment["p_filesz"]),
                "actual": str(len(data)),
            },
        )
    return data


def flatten(segments: tuple[LoadSegment, ...]) -> bytes:
    base = min(seg.paddr for seg in segments)
    end = max(seg.paddr + len(seg.data) for seg in segments)
    flat = bytearray(end - base)
    for seg in sorted(segments, key=lambda s: s.paddr):
        offset = seg.paddr - base
        flat[offset:offset + len(seg.data)] = seg.data
    return bytes(flat)


def elf_to_raw(image: Path, output: Path) -> Path:
    payload = flatten(load_segments(image))
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(payload)
    return output


@dataclass(slots=True)
class ArtifactTransformer:
    settings: Settings

    def transform(self, platform: Platform) -> Path:
        """Write the raw binary for *platform* from the shared intermediate image.

        Refuses to run unless the build stamp says the intermediate image was
        built for *platform* and is unmodified since.
        """
        paths = resolve_paths(self.settings, platform)
        if not paths.intermediate.exists():
            raise TransformError(
                "Intermediate kernel image not found.",
                hint=f"Run `bootrig build --platform {platform}` first.",
                context={"image": str(paths.intermediate)},
            )
        BuildStampStore(paths.stamp).verify(
            expected=BuildInputs(
                triple=self.settings.target.triple,
                mode=self.settings.target.mode,
                platform=platform,
                kernel=self.settings.kernel,
            ),
            image=paths.intermediate,
        )
        return elf_to_raw(paths.intermediate, paths.raw_binary)
