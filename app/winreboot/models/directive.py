"""Removal directive models.

A removal profile is parsed once into a flat list of typed directives, so
code that applies them never has to re-inspect the raw text to decide what
a line means.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath

# Values that would select everything or escape the tree.
UNSAFE_VALUES = frozenset({"", "/", "*", ".", ".."})


class DirectiveKind(str, Enum):
    """How a directive selects what to remove.

    Attributes:
        EXPLICIT_PATH: A path relative to the installer media tree root,
            removed if present.
        NAME_TOKEN: Case-insensitive substring matched against directory names
            anywhere inside a mounted image index.
    """

    EXPLICIT_PATH = "path"
    NAME_TOKEN = "token"


def is_safe_value(value: str) -> bool:
    """Check that a directive value can never resolve to the root or outside it.

    Args:
        value: Raw directive value (already stripped).

    Returns:
        True if the value is safe to apply.
    """
    if value in UNSAFE_VALUES or value.strip("*/\\ ") == "":
        return False
    if value.startswith(("/", "\\", "~")):
        return False
    return ".." not in PurePosixPath(value.replace("\\", "/")).parts


@dataclass(frozen=True, slots=True)
class RemovalDirective:
    """One removal instruction.

    Attributes:
        kind: Whether the value is an explicit path or a name token.
        value: Relative path or directory-name token.
    """

    kind: DirectiveKind
    value: str

    def __post_init__(self) -> None:
        """Reject values that could target the root or escape it."""
        if not is_safe_value(self.value):
            msg = f"Unsafe removal directive: {self.value!r}"
            raise ValueError(msg)

    @property
    def is_path(self) -> bool:
        return self.kind == DirectiveKind.EXPLICIT_PATH

    @property
    def is_token(self) -> bool:
        return self.kind == DirectiveKind.NAME_TOKEN

    def __str__(self) -> str:
        return f"PATH:{self.value}" if self.is_path else self.value


@dataclass(frozen=True, slots=True)
class RemovalProfile:
    """A named, fully expanded removal profile.

    Attributes:
        name: Profile name (file stem).
        directives: Expanded directives in application order.
        includes: Names of every profile pulled in, in first-include order.
    """

    name: str
    directives: tuple[RemovalDirective, ...] = ()
    includes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def path_count(self) -> int:
        return sum(1 for d in self.directives if d.is_path)

    @property
    def token_count(self) -> int:
        return sum(1 for d in self.directives if d.is_token)
