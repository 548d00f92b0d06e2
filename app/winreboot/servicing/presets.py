"""Removal preset resolution.

Expands a named removal profile into a flat, ordered list of
:class:`RemovalDirective`. Profiles are line-oriented text files:

    # comment
    include minimal          (also accepted: @include minimal)
    PATH:support             explicit path, relative to the media tree root
    Microsoft.BingNews       directory-name token

Includes are expanded depth-first at the point they appear, so directives
from an included profile come before the lines that follow the include.
User presets shadow the bundled ones of the same name.
"""

import logging
import re
from importlib import resources
from importlib.resources.abc import Traversable
from pathlib import Path

from winreboot.core.errors import (
    OverrideNotFoundError,
    ProfileCycleError,
    ProfileNotFoundError,
)
from winreboot.models.directive import (
    DirectiveKind,
    RemovalDirective,
    RemovalProfile,
    is_safe_value,
)

logger = logging.getLogger(__name__)

# Profile names that mean "leave the image untouched".
NOOP_PROFILES = frozenset({"vanilla", "no-op", "none"})

PATH_PREFIX = "PATH:"
_INCLUDE_RE = re.compile(r"^@?include(?:\s+(?P<ref>.*))?$", re.IGNORECASE)
_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def is_noop_profile(name: str) -> bool:
    """Check whether a profile name skips servicing entirely."""
    return name.strip().lower() in NOOP_PROFILES


def _bundled_presets() -> Traversable:
    return resources.files("winreboot.data").joinpath("removal-presets")


class PresetResolver:
    """Resolves removal profiles from user and bundled preset directories.

    Attributes:
        search_dirs: User preset directories, searched in order before the
            bundled presets.
    """

    def __init__(self, search_dirs: list[Path] | None = None, include_bundled: bool = True) -> None:
        """Initialize the resolver.

        Args:
            search_dirs: Directories holding ``<name>.txt`` preset files.
            include_bundled: Also search the presets shipped with the package.
        """
        self.search_dirs = list(search_dirs or [])
        self._include_bundled = include_bundled

    def resolve(
        self,
        profile_name: str,
        override_path: Path | None = None,
    ) -> list[RemovalDirective]:
        """Expand a profile (and optional override list) into directives.

        Args:
            profile_name: Name of the profile to expand.
            override_path: Optional extra list, appended after the profile.

        Returns:
            Directives in application order. Empty for no-op profiles.

        Raises:
            ProfileNotFoundError: If the profile or an included profile is missing.
            OverrideNotFoundError: If override_path is given but missing.
            ProfileCycleError: If includes form a cycle.
        """
        if is_noop_profile(profile_name):
            logger.debug("Profile %r is a no-op; nothing to resolve", profile_name)
            return []

        directives: list[RemovalDirective] = []
        includes: list[str] = []
        self._expand(profile_name, [], directives, includes)

        if override_path is not None:
            if not override_path.is_file():
                raise OverrideNotFoundError(str(override_path))
            text = override_path.read_text(encoding="utf-8")
            self._expand_text(text, str(override_path), [str(override_path)], directives, includes)

        logger.info(
            "Resolved profile %r: %d directive(s), includes: %s",
            profile_name,
            len(directives),
            ", ".join(includes) or "none",
        )
        return directives

    def load_profile(self, profile_name: str) -> RemovalProfile:
        """Resolve a profile and keep its include lineage.

        Raises:
            ProfileNotFoundError: If the profile or an included profile is missing.
            ProfileCycleError: If includes form a cycle.
        """
        if is_noop_profile(profile_name):
            return RemovalProfile(name=profile_name)
        directives: list[RemovalDirective] = []
        includes: list[str] = []
        self._expand(profile_name, [], directives, includes)
        return RemovalProfile(
            name=profile_name,
            directives=tuple(directives),
            includes=tuple(includes),
        )

    def list_profiles(self) -> list[str]:
        """Names of every available profile, user presets first."""
        names: list[str] = []
        for directory in self.search_dirs:
            if directory.is_dir():
                names.extend(sorted(p.stem for p in directory.glob("*.txt")))
        if self._include_bundled:
            bundled = _bundled_presets()
            names.extend(
                sorted(
                    entry.name.removesuffix(".txt")
                    for entry in bundled.iterdir()
                    if entry.name.endswith(".txt")
                )
            )
        # Preserve first occurrence (user preset shadows bundled one)
        return list(dict.fromkeys(names))

    # --- expansion --------------------------------------------------------

    def _expand(
        self,
        name: str,
        stack: list[str],
        out: list[RemovalDirective],
        includes: list[str],
    ) -> None:
        if name in stack:
            raise ProfileCycleError([*stack, name])
        text = self._read_source(name)
        self._expand_text(text, name, [*stack, name], out, includes)

    def _expand_text(
        self,
        text: str,
        origin: str,
        stack: list[str],
        out: list[RemovalDirective],
        includes: list[str],
    ) -> None:
        for line_num, raw in enumerate(text.splitlines(), start=1):
            line = raw.strip()
            if not line or line.startswith("#"):
                continue

            match = _INCLUDE_RE.match(line)
            if match:
                ref = (match.group("ref") or "").strip()
                if not ref:
                    logger.warning(
                        "Dropping include without a profile name (%s:%d)", origin, line_num
                    )
                    continue
                if ref not in includes:
                    includes.append(ref)
                self._expand(ref, stack, out, includes)
                continue

            directive = parse_directive(line)
            if directive is None:
                logger.warning("Dropping unsafe directive %r (%s:%d)", line, origin, line_num)
                continue
            out.append(directive)

    def locate(self, name: str) -> tuple[str, Traversable]:
        """Find the backing file of a profile.

        Returns:
            ("user", file) or ("bundled", file).

        Raises:
            ProfileNotFoundError: If no source defines the profile.
        """
        if not _NAME_RE.match(name):
            raise ProfileNotFoundError(name)

        filename = f"{name}.txt"
        for directory in self.search_dirs:
            candidate = directory / filename
            if candidate.is_file():
                return "user", candidate

        if self._include_bundled:
            bundled = _bundled_presets().joinpath(filename)
            if bundled.is_file():
                return "bundled", bundled

        raise ProfileNotFoundError(name)

    def _read_source(self, name: str) -> str:
        origin, source = self.locate(name)
        logger.debug("Loading %s profile %r", origin, name)
        return source.read_text(encoding="utf-8")


def parse_directive(line: str) -> RemovalDirective | None:
    """Parse one non-comment, non-include line.

    Args:
        line: Stripped profile line.

    Returns:
        The directive, or None if the value is unsafe.
    """
    if line.upper().startswith(PATH_PREFIX):
        kind = DirectiveKind.EXPLICIT_PATH
        value = line[len(PATH_PREFIX) :].strip().replace("\\", "/").rstrip("/")
    else:
        kind = DirectiveKind.NAME_TOKEN
        value = line

    if not is_safe_value(value):
        return None
    return RemovalDirective(kind=kind, value=value)


def resolve(
    profile_name: str,
    override_path: Path | None = None,
    presets_dir: Path | None = None,
) -> list[RemovalDirective]:
    """Resolve a profile with the default search order.

    Args:
        profile_name: Profile to expand.
        override_path: Optional extra list appended after the profile.
        presets_dir: Optional user presets directory searched first.

    Returns:
        Directives in application order.
    """
    search_dirs = [presets_dir] if presets_dir is not None else []
    return PresetResolver(search_dirs=search_dirs).resolve(profile_name, override_path)
