"""Driver root discovery and staging.

A driver root is a directory that directly contains at least one .inf
file. Roots are numbered in first-discovery order and copied into
sources/$OEM$/$$/INFDRIVERS/DriverSetN of the media tree.
"""

import logging
import os
import shutil
from collections.abc import Iterable
from pathlib import Path

from winreboot.models.driver import DriverSet

logger = logging.getLogger(__name__)


def _has_inf(filenames: Iterable[str]) -> bool:
    return any(name.lower().endswith(".inf") for name in filenames)


def find_inf_roots(*search_dirs: Path) -> list[Path]:
    """Find directories that directly contain an .inf file.

    Directories are searched in the order given, each walked in sorted
    order. A directory reached twice (same real path) is reported once.

    Args:
        search_dirs: Directories to scan recursively. Missing ones are ignored.

    Returns:
        Unique driver roots in first-seen order.
    """
    roots: list[Path] = []
    seen: set[str] = set()

    for search_dir in search_dirs:
        if not search_dir.is_dir():
            continue
        for dirpath, dirnames, filenames in os.walk(search_dir):
            dirnames.sort()
            if not _has_inf(filenames):
                continue
            identity = os.path.realpath(dirpath)
            if identity in seen:
                continue
            seen.add(identity)
            roots.append(Path(dirpath))

    logger.debug("Found %d driver root(s)", len(roots))
    return roots


def stage_driver_sets(
    roots: list[Path],
    staging_dir: Path,
    exclude: Iterable[Path] = (),
) -> list[DriverSet]:
    """Copy each driver root into its own DriverSetN directory.

    Sources are copied, never moved. Files listed in exclude (archives that
    were already extracted) are left out of the copy.

    Args:
        roots: Driver roots in staging order.
        staging_dir: INFDRIVERS directory inside the media tree.
        exclude: Files not to copy.

    Returns:
        The staged DriverSets.
    """
    skip = {os.path.realpath(p) for p in exclude}

    def ignore(directory: str, names: list[str]) -> list[str]:
        return [n for n in names if os.path.realpath(os.path.join(directory, n)) in skip]

    staging_dir.mkdir(parents=True, exist_ok=True)
    # Sets from an earlier run would otherwise be merged with the new numbering
    for stale in staging_dir.glob("DriverSet*"):
        if stale.is_dir():
            shutil.rmtree(stale)

    driver_sets: list[DriverSet] = []
    for number, root in enumerate(roots, start=1):
        destination = staging_dir / f"DriverSet{number}"
        shutil.copytree(root, destination, symlinks=True, ignore=ignore, dirs_exist_ok=True)
        driver_sets.append(DriverSet(number=number, source_root=root, staged_path=destination))
        logger.debug("Staged %s -> %s", root, destination.name)

    logger.info("Staged %d driver set(s) to %s", len(driver_sets), staging_dir)
    return driver_sets
