"""Thin wrapper around wimlib-imagex.

Each function runs one wimlib-imagex subcommand and returns its
CommandResult; callers decide which typed error a failure maps to.
Only :func:`info` interprets output.
"""

import logging
import re
from pathlib import Path

from winreboot.core.errors import ImageOperationError
from winreboot.models.image import ImageContainer, ImageIndex
from winreboot.utils.shell import CommandResult, run_command

logger = logging.getLogger(__name__)

WIMLIB = "wimlib-imagex"

# Metadata queries are quick; everything else may run for many minutes.
_INFO_TIMEOUT: float = 120.0

_FIELD_RE = re.compile(r"^(?P<key>[A-Za-z ]+?):\s*(?P<value>.*)$")


def _run(args: list[str], timeout: float | None = None) -> CommandResult:
    logger.debug("Running %s %s", WIMLIB, " ".join(args))
    return run_command([WIMLIB, *args], timeout=timeout)


def info(path: Path) -> ImageContainer:
    """Read the index table of an image container.

    Args:
        path: WIM, ESD or first SWM part.

    Returns:
        ImageContainer with one ImageIndex per index.

    Raises:
        ImageOperationError: If wimlib-imagex cannot read the container.
    """
    result = _run(["info", str(path)], timeout=_INFO_TIMEOUT)
    if not result.success:
        msg = f"Cannot read image {path}: {result.error_text}"
        raise ImageOperationError(msg)

    indices = parse_info(result.stdout)
    logger.debug("%s has %d index(es)", path.name, len(indices))
    return ImageContainer.from_path(path).with_indices(indices)


def parse_info(output: str) -> tuple[ImageIndex, ...]:
    """Parse the per-index blocks of ``wimlib-imagex info`` output.

    Args:
        output: Raw stdout of ``wimlib-imagex info``.

    Returns:
        Indices in the order they are listed.
    """
    indices: list[ImageIndex] = []
    current: dict[str, str] | None = None

    def flush() -> None:
        if current is None or "Index" not in current:
            return
        try:
            number = int(current["Index"])
        except ValueError:
            return
        size = current.get("Total Bytes", "0").split()[0]
        indices.append(
            ImageIndex(
                index=number,
                name=current.get("Name", ""),
                size_bytes=int(size) if size.isdigit() else 0,
            )
        )

    for line in output.splitlines():
        match = _FIELD_RE.match(line.strip())
        if not match:
            continue
        key, value = match.group("key").strip(), match.group("value").strip()
        if key == "Index":
            flush()
            current = {}
        if current is not None:
            current.setdefault(key, value)

    flush()
    return tuple(indices)


def export_all(source: Path, destination: Path, compress: str = "LZX") -> CommandResult:
    """Export every index of source into a new container at destination."""
    return _run(
        ["export", str(source), "all", str(destination), f"--compress={compress}", "--check"]
    )


def split(source: Path, first_part: Path, part_size_mb: int) -> CommandResult:
    """Split source into parts named after first_part (install.swm, install2.swm...)."""
    return _run(["split", str(source), str(first_part), str(part_size_mb)])


def mountrw(container: Path, index: int, mount_point: Path) -> CommandResult:
    """Mount one index read-write at mount_point."""
    return _run(["mountrw", str(container), str(index), str(mount_point)])


def unmount(mount_point: Path, commit: bool) -> CommandResult:
    """Unmount an image, writing changes back when commit is True."""
    args = ["unmount", str(mount_point)]
    if commit:
        args.append("--commit")
    return _run(args)
