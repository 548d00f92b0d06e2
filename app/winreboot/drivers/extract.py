"""Best-effort extraction of vendor driver payloads.

Every file directly under the driver source directory is classified by
extension and unpacked with the matching tool into its own subdirectory
of a scratch area. A missing tool or a failed extraction is recorded as a
skip; it never stops the run.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.models.driver import PayloadKind
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

# Vendor packages can be several hundred MB
_EXTRACT_TIMEOUT: float = 900.0


@dataclass(slots=True)
class ExtractionResult:
    """Outcome of extracting one source directory.

    Attributes:
        extracted: Payload files that were unpacked.
        skipped: (payload, reason) for payloads that were not unpacked.
    """

    extracted: list[Path] = field(default_factory=list)
    skipped: list[tuple[Path, str]] = field(default_factory=list)


def extraction_command(kind: PayloadKind, payload: Path, out_dir: Path) -> list[str]:
    """Build the command that unpacks payload into out_dir.

    Raises:
        ValueError: If the payload kind is not an archive.
    """
    if kind == PayloadKind.ZIP:
        return ["unzip", "-q", "-o", str(payload), "-d", str(out_dir)]
    if kind == PayloadKind.CAB:
        return ["cabextract", "-q", "-d", str(out_dir), str(payload)]
    if kind in (PayloadKind.MSI, PayloadKind.EXE):
        return ["7z", "x", "-y", f"-o{out_dir}", str(payload)]
    msg = f"{payload.name} is not an extractable payload"
    raise ValueError(msg)


def extract_payloads(
    source_dir: Path,
    scratch_dir: Path,
    capabilities: Capabilities,
) -> ExtractionResult:
    """Unpack every archive directly under source_dir.

    Args:
        source_dir: Operator-populated driver directory.
        scratch_dir: Where each payload gets a ``<name>.d`` directory.
        capabilities: Host tool set.

    Returns:
        ExtractionResult listing extracted and skipped payloads.
    """
    result = ExtractionResult()

    for payload in sorted(p for p in source_dir.iterdir() if p.is_file()):
        kind = PayloadKind.from_path(payload)

        if kind == PayloadKind.INF:
            continue
        if kind == PayloadKind.UNKNOWN:
            logger.warning("Unknown driver payload type, ignoring: %s", payload.name)
            result.skipped.append((payload, "unknown payload type"))
            continue

        tool = kind.extractor
        if tool is None or not capabilities.has(tool):
            logger.warning("Skipping %s: %s is not installed", payload.name, tool)
            result.skipped.append((payload, f"{tool} not installed"))
            continue

        out_dir = scratch_dir / f"{payload.name}.d"
        out_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Extracting %s with %s", payload.name, tool)
        cmd = run_command(extraction_command(kind, payload, out_dir), timeout=_EXTRACT_TIMEOUT)
        if not cmd.success:
            logger.warning("Extracting %s failed: %s", payload.name, cmd.error_text)
            result.skipped.append((payload, f"{tool} failed: {cmd.error_text}"))
            continue
        result.extracted.append(payload)

    return result
