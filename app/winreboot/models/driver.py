"""Driver injection models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class PayloadKind(str, Enum):
    """Driver payload families, keyed by file extension.

    Attributes:
        INF: Already-extracted driver description file.
        ZIP: Zip archive (unzip).
        CAB: Cabinet archive (cabextract).
        MSI: Windows installer package (7z, best effort).
        EXE: Self-extracting vendor package (7z, best effort).
        UNKNOWN: Anything else; skipped.
    """

    INF = "inf"
    ZIP = "zip"
    CAB = "cab"
    MSI = "msi"
    EXE = "exe"
    UNKNOWN = "unknown"

    @classmethod
    def from_path(cls, path: Path) -> PayloadKind:
        suffix = path.suffix.lower().lstrip(".")
        try:
            return cls(suffix)
        except ValueError:
            return cls.UNKNOWN

    @property
    def extractor(self) -> str | None:
        """External tool that unpacks this payload, if any."""
        return _EXTRACTORS.get(self)


_EXTRACTORS: dict[PayloadKind, str] = {
    PayloadKind.ZIP: "unzip",
    PayloadKind.CAB: "cabextract",
    PayloadKind.MSI: "7z",
    PayloadKind.EXE: "7z",
}


@dataclass(frozen=True, slots=True)
class DriverSet:
    """A staged driver root.

    Attributes:
        number: Position in first-discovery order, starting at 1.
        source_root: Directory the driver was discovered in.
        staged_path: DriverSetN directory inside the media tree.
    """

    number: int
    source_root: Path
    staged_path: Path

    @property
    def name(self) -> str:
        return f"DriverSet{self.number}"


@dataclass(slots=True)
class InjectionReport:
    """Outcome of a driver injection run.

    Attributes:
        driver_sets: Staged driver sets in order.
        extracted: Payload files that were unpacked.
        skipped: (payload, reason) for every payload that was not unpacked.
        boot_image_patched: Whether the pre-boot startup script was rewritten.
    """

    driver_sets: list[DriverSet] = field(default_factory=list)
    extracted: list[Path] = field(default_factory=list)
    skipped: list[tuple[Path, str]] = field(default_factory=list)
    boot_image_patched: bool = False

    @property
    def staged_count(self) -> int:
        return len(self.driver_sets)

    @property
    def warnings(self) -> list[str]:
        return [f"Skipped {path.name}: {reason}" for path, reason in self.skipped]
