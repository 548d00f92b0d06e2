"""Directive application against a mounted image tree.

Explicit paths are removed if present. Name tokens are matched as
case-insensitive substrings of directory names anywhere in the tree. Each
directive walks the tree as it is at that moment, so an earlier removal can
change what a later token matches. Nothing outside the root is ever removed.
"""

import logging
import os
import shutil
from dataclasses import dataclass, field
from pathlib import Path

from winreboot.models.directive import RemovalDirective

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class RemovalReport:
    """What a directive list removed from one tree.

    Attributes:
        removed: Entries that were deleted, in removal order.
        unmatched: Directives that matched nothing.
        failed: (entry, error) for entries that could not be deleted.
        token_scans: Number of full-tree scans performed for name tokens.
    """

    removed: list[Path] = field(default_factory=list)
    unmatched: list[RemovalDirective] = field(default_factory=list)
    failed: list[tuple[Path, str]] = field(default_factory=list)
    token_scans: int = 0

    @property
    def removed_count(self) -> int:
        return len(self.removed)

    def merge(self, other: "RemovalReport") -> None:
        """Fold another report (e.g. from a second image index) into this one."""
        self.removed.extend(other.removed)
        self.unmatched.extend(other.unmatched)
        self.failed.extend(other.failed)
        self.token_scans += other.token_scans


def is_within(root: Path, candidate: Path) -> bool:
    """Check that candidate's parent resolves inside root and candidate is not root."""
    real_root = Path(os.path.realpath(root))
    real_parent = Path(os.path.realpath(candidate.parent))
    if real_parent != real_root and real_root not in real_parent.parents:
        return False
    return real_parent / candidate.name != real_root


def remove_entry(path: Path) -> None:
    """Delete a file, symlink or directory tree without following links.

    Raises:
        OSError: If deletion fails.
    """
    if path.is_symlink() or not path.is_dir():
        path.unlink()
    else:
        shutil.rmtree(path)


def apply_directives(root: Path, directives: list[RemovalDirective]) -> RemovalReport:
    """Apply directives to a tree in order.

    Args:
        root: Mount point of the image (or any tree root).
        directives: Directives from the preset resolver.

    Returns:
        RemovalReport with everything that was removed.
    """
    report = RemovalReport()
    for directive in directives:
        if directive.is_path:
            matched = _apply_path(root, directive, report)
        else:
            matched = _apply_token(root, directive, report)
        if not matched:
            logger.debug("No match for %s", directive)
            report.unmatched.append(directive)

    logger.info(
        "Removed %d entr%s (%d directive(s) matched nothing)",
        report.removed_count,
        "y" if report.removed_count == 1 else "ies",
        len(report.unmatched),
    )
    return report


def _apply_path(root: Path, directive: RemovalDirective, report: RemovalReport) -> bool:
    target = root.joinpath(*directive.value.split("/"))
    if not os.path.lexists(target):
        return False
    if not is_within(root, target):
        logger.warning("Skipping %s: resolves outside %s", directive, root)
        return False
    _remove(target, report)
    return True


def _apply_token(root: Path, directive: RemovalDirective, report: RemovalReport) -> bool:
    token = directive.value.casefold()
    report.token_scans += 1
    matched = False

    for dirpath, dirnames, _filenames in os.walk(root):
        dirnames.sort()
        keep: list[str] = []
        for name in dirnames:
            if token in name.casefold():
                _remove(Path(dirpath) / name, report)
                matched = True
            else:
                keep.append(name)
        # Don't descend into what was just removed
        dirnames[:] = keep

    return matched


def _remove(path: Path, report: RemovalReport) -> None:
    try:
        remove_entry(path)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)
        report.failed.append((path, str(e)))
        return
    logger.debug("Removed %s", path)
    report.removed.append(path)
