"""Offline image servicing sessions.

A session mounts one image index read-write, edits the mounted tree and
then either commits (writes the changes back) or abandons it. The mount is
registered with the ResourceTracker before wimlib-imagex runs, so an
abnormal exit still leads to an unmount.

State machine:
    UNMOUNTED -> MOUNTED -> COMMITTED | ABANDONED
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path
from types import TracebackType

from winreboot.core.capabilities import Capabilities
from winreboot.core.errors import CommitFailedError, MountFailedError
from winreboot.core.paths import SYSTEM_HIVE_PATH, media_path
from winreboot.core.resources import ResourceHandle, ResourceTracker
from winreboot.models.directive import RemovalDirective
from winreboot.models.image import ImageContainer
from winreboot.servicing import wimlib
from winreboot.servicing.removal import RemovalReport, apply_directives
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

# LabConfig values that let Setup run on hardware failing the stock checks.
BYPASS_VALUES = (
    "BypassTPMCheck",
    "BypassSecureBootCheck",
    "BypassCPUCheck",
    "BypassRAMCheck",
    "BypassStorageCheck",
)

SYSTEM_HIVE_PREFIX = "HKEY_LOCAL_MACHINE\\SYSTEM"


def bypass_reg_text() -> str:
    """Render the LabConfig bypass as a .reg document."""
    lines = [
        "Windows Registry Editor Version 5.00",
        "",
        f"[{SYSTEM_HIVE_PREFIX}\\Setup\\LabConfig]",
    ]
    lines.extend(f'"{name}"=dword:00000001' for name in BYPASS_VALUES)
    return "\n".join(lines) + "\n"


class SessionState(str, Enum):
    """Lifecycle of a servicing session."""

    UNMOUNTED = "unmounted"
    MOUNTED = "mounted"
    COMMITTED = "committed"
    ABANDONED = "abandoned"


class ServicingSession:
    """One read-write mount of one image index.

    Use as a context manager. Leaving the block normally does not commit;
    call :meth:`commit` explicitly. Leaving through an exception, or without
    a commit, abandons the session.

    Example:
        >>> with ServicingSession(container, 1, mount_dir, tracker, caps) as session:
        ...     session.apply_directives(directives)
        ...     session.commit()
    """

    def __init__(
        self,
        container: ImageContainer,
        index: int,
        mount_point: Path,
        tracker: ResourceTracker,
        capabilities: Capabilities,
    ) -> None:
        self.container = container
        self.index = index
        self.mount_point = mount_point
        self._tracker = tracker
        self._capabilities = capabilities
        self._handle: ResourceHandle | None = None
        self.state = SessionState.UNMOUNTED

    def __enter__(self) -> ServicingSession:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.state != SessionState.MOUNTED:
            return
        if exc_type is not None:
            logger.warning("Abandoning session at %s after %s", self.mount_point, exc_type.__name__)
        else:
            logger.warning("Session at %s closed without commit; abandoning", self.mount_point)
        self._abandon_quietly()

    @property
    def committed(self) -> bool:
        return self.state == SessionState.COMMITTED

    @property
    def is_open(self) -> bool:
        return self.state == SessionState.MOUNTED

    def open(self) -> None:
        """Mount the index read-write.

        Raises:
            MissingDependencyError: If wimlib-imagex is missing.
            SessionAlreadyOpenError: If the mount point already has a session.
            MountFailedError: If the index is invalid or the mount fails.
        """
        if self.state != SessionState.UNMOUNTED:
            msg = f"Session at {self.mount_point} is {self.state.value}; cannot mount again"
            raise MountFailedError(msg)

        self._capabilities.require(wimlib.WIMLIB)

        if not self.container.is_mountable:
            name, state = self.container.path.name, self.container.state.value
            msg = f"{name} is {state} and cannot be mounted"
            raise MountFailedError(msg)
        known = {i.index for i in self.container.indices}
        if self.index < 1 or (known and self.index not in known):
            msg = f"{self.container.path.name} has no index {self.index}"
            raise MountFailedError(msg)

        self.mount_point.mkdir(parents=True, exist_ok=True)
        self._handle = self._tracker.register_image_mount(self.mount_point)

        logger.info(
            "Mounting %s index %d at %s", self.container.path.name, self.index, self.mount_point
        )
        result = wimlib.mountrw(self.container.path, self.index, self.mount_point)
        if not result.success:
            self._tracker.forget(self._handle)
            self._handle = None
            msg = (
                f"Mounting {self.container.path.name} index {self.index} failed: "
                f"{result.error_text}"
            )
            raise MountFailedError(msg)

        self.state = SessionState.MOUNTED

    def apply_directives(self, directives: list[RemovalDirective]) -> RemovalReport:
        """Remove what the directives select from the mounted tree."""
        self._require_mounted()
        return apply_directives(self.mount_point, directives)

    def apply_registry_bypass(self) -> bool:
        """Merge the hardware-check bypass into the SYSTEM hive.

        Skipped when the hive or hivexregedit is missing. A failed merge is
        logged; the session continues.

        Returns:
            True if the bypass was merged.
        """
        self._require_mounted()
        hive = media_path(self.mount_point, SYSTEM_HIVE_PATH)
        if not hive.is_file():
            logger.info("No SYSTEM hive in index %d; skipping registry bypass", self.index)
            return False
        if not self._capabilities.has_hivexregedit:
            logger.warning("hivexregedit not found; registry bypass skipped")
            return False

        logger.info("Applying TPM/CPU/RAM/Secure Boot bypass to index %d", self.index)
        result = run_command(
            ["hivexregedit", "--merge", "--prefix", SYSTEM_HIVE_PREFIX, str(hive)],
            input_text=bypass_reg_text(),
        )
        if not result.success:
            logger.warning("Registry bypass failed: %s", result.error_text)
            return False
        return True

    def commit(self) -> None:
        """Unmount with write-back.

        If write-back fails, the image is unmounted once more without
        committing so the mount point is released either way.

        Raises:
            CommitFailedError: If the write-back failed.
        """
        self._require_mounted()
        logger.info("Committing %s index %d", self.container.path.name, self.index)
        result = wimlib.unmount(self.mount_point, commit=True)
        if result.success:
            self._released(SessionState.COMMITTED)
            return

        error = result.error_text
        logger.error("Commit failed (%s); unmounting without commit", error)
        retry = wimlib.unmount(self.mount_point, commit=False)
        if retry.success:
            self._released(SessionState.ABANDONED)
        else:
            logger.error("Unmount without commit also failed: %s", retry.error_text)
        msg = f"Committing {self.container.path.name} index {self.index} failed: {error}"
        raise CommitFailedError(msg)

    def abandon(self) -> None:
        """Unmount without write-back.

        Raises:
            MountFailedError: If the unmount fails.
        """
        self._require_mounted()
        result = wimlib.unmount(self.mount_point, commit=False)
        if not result.success:
            msg = f"Unmounting {self.mount_point} failed: {result.error_text}"
            raise MountFailedError(msg)
        self._released(SessionState.ABANDONED)

    def _abandon_quietly(self) -> None:
        try:
            self.abandon()
        except MountFailedError as e:
            # The tracker still holds the handle and retries in its sweep
            logger.error("%s", e)

    def _released(self, state: SessionState) -> None:
        self.state = state
        if self._handle is not None:
            self._tracker.forget(self._handle)
            self._handle = None

    def _require_mounted(self) -> None:
        if self.state != SessionState.MOUNTED:
            msg = f"No open session at {self.mount_point} (state: {self.state.value})"
            raise MountFailedError(msg)


def service(
    container: ImageContainer,
    index: int | None,
    directives: list[RemovalDirective],
    apply_registry_bypass: bool,
    *,
    tracker: ResourceTracker,
    capabilities: Capabilities,
    mount_root: Path,
) -> RemovalReport:
    """Mount, edit and commit one index, or every index.

    Nothing is mounted when there are no directives and no bypass.

    Args:
        container: A converted, unsplit container.
        index: Index to service, or None for every index in the container.
        directives: Directives applied inside each mounted index; the pipeline
            passes only name tokens here.
        apply_registry_bypass: Also merge the hardware-check bypass.
        tracker: Tracker that owns the mount points.
        capabilities: Host tool set.
        mount_root: Directory under which mount points are created.

    Returns:
        Combined RemovalReport across the serviced indices.

    Raises:
        MountFailedError: If an index cannot be mounted.
        CommitFailedError: If writing an index back fails.
    """
    report = RemovalReport()
    if not directives and not apply_registry_bypass:
        logger.info("Nothing to apply; leaving %s untouched", container.path.name)
        return report

    if index is None:
        if not container.indices:
            container = wimlib.info(container.path)
        indices = [i.index for i in container.indices]
    else:
        indices = [index]

    for number in indices:
        mount_point = mount_root / f"index{number}"
        with ServicingSession(container, number, mount_point, tracker, capabilities) as session:
            report.merge(session.apply_directives(directives))
            if apply_registry_bypass:
                session.apply_registry_bypass()
            session.commit()
    return report
