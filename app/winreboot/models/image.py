"""Image container models.

An image container is one on-disk archive holding one or more OS image
indices: the distributed archival form (ESD), the mountable form (WIM),
or a WIM split into FAT32-sized parts (SWM).
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path


class ImageFormat(str, Enum):
    """On-disk container format, derived from the file extension."""

    ESD = "esd"
    WIM = "wim"
    SWM = "swm"

    @classmethod
    def from_path(cls, path: Path) -> ImageFormat:
        """Infer the format from a file name.

        Raises:
            ValueError: If the extension is not a known image format.
        """
        suffix = path.suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError:
            msg = f"Not an image container: {path}"
            raise ValueError(msg) from None


class ImageState(str, Enum):
    """Lifecycle of a container inside the pipeline.

    Attributes:
        SEALED: As distributed, read-optimized (ESD).
        CONVERTED: Rewritten into the mountable format (WIM).
        SPLIT: Converted, then split into bounded-size parts.
    """

    SEALED = "sealed"
    CONVERTED = "converted"
    SPLIT = "split"


@dataclass(frozen=True, slots=True)
class ImageIndex:
    """Metadata for one index inside a container.

    Attributes:
        index: 1-based index number.
        name: Edition name reported by the image.
        size_bytes: Expanded size of the index.
    """

    index: int
    name: str = ""
    size_bytes: int = 0


@dataclass(frozen=True, slots=True)
class ImageContainer:
    """Reference to an on-disk image archive.

    Attributes:
        path: Container file (for SPLIT, the first part).
        state: Where the container is in the conversion lifecycle.
        indices: Per-index metadata, when known.
        parts: Ordered part files when state is SPLIT.
    """

    path: Path
    state: ImageState = ImageState.CONVERTED
    indices: tuple[ImageIndex, ...] = ()
    parts: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_path(cls, path: Path) -> ImageContainer:
        """Build a container reference with the state implied by its format."""
        fmt = ImageFormat.from_path(path)
        state = {
            ImageFormat.ESD: ImageState.SEALED,
            ImageFormat.WIM: ImageState.CONVERTED,
            ImageFormat.SWM: ImageState.SPLIT,
        }[fmt]
        parts = (path,) if fmt == ImageFormat.SWM else ()
        return cls(path=path, state=state, parts=parts)

    @property
    def format(self) -> ImageFormat:
        return ImageFormat.from_path(self.path)

    @property
    def index_count(self) -> int:
        return len(self.indices)

    @property
    def is_mountable(self) -> bool:
        """Only a converted, unsplit container can be mounted read-write."""
        return self.state == ImageState.CONVERTED

    def with_indices(self, indices: tuple[ImageIndex, ...]) -> ImageContainer:
        return replace(self, indices=indices)

    def size_on_disk(self) -> int:
        """Total bytes used by the container file(s)."""
        files = self.parts if self.parts else (self.path,)
        return sum(p.stat().st_size for p in files if p.exists())
