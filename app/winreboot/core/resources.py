"""Temporary-resource tracking.

Every mount point and scratch directory the pipeline opens is registered
here before the operation that could fail runs. Handles are released in
reverse acquisition order when the owning ``with`` block exits, whether
normally or through an exception.

Registrations are mirrored to a ledger file in the state directory so a
process killed outright (SIGKILL, power loss) leaves a record behind; the
next run calls :meth:`ResourceTracker.recover_stale` before touching any
image and forcibly unmounts and deletes whatever the ledger lists.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import signal
import subprocess
import tempfile
import uuid
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import TracebackType

from winreboot.core.paths import get_ledger_path
from winreboot.utils.shell import run_command

logger = logging.getLogger(__name__)

# Unmounts should be quick; a hung FUSE daemon must not stall the sweep forever.
_UNMOUNT_TIMEOUT: float = 300.0


class ResourceKind(str, Enum):
    """Kind of tracked resource.

    Attributes:
        IMAGE_MOUNT: A read-write image index mounted with wimlib-imagex.
        MOUNT: A block device or loop mount made with mount(8).
        SCRATCH_DIR: A temporary directory to delete.
    """

    IMAGE_MOUNT = "image_mount"
    MOUNT = "mount"
    SCRATCH_DIR = "scratch_dir"


class SessionAlreadyOpenError(RuntimeError):
    """Raised when a mount point is registered twice.

    This is a programming error: exactly one session may be open per
    mount point.
    """


@dataclass(frozen=True, slots=True)
class ResourceHandle:
    """Handle returned for every registered resource.

    Attributes:
        kind: What kind of resource this is.
        path: Mount point or directory path.
        handle_id: Unique identifier of this registration.
    """

    kind: ResourceKind
    path: Path
    handle_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self, pid: int) -> dict[str, object]:
        return {"id": self.handle_id, "kind": self.kind.value, "path": str(self.path), "pid": pid}


def _pid_alive(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def _unmount(args: list[str], path: Path) -> None:
    try:
        result = run_command(args, timeout=_UNMOUNT_TIMEOUT)
    except subprocess.SubprocessError as e:
        raise OSError(f"{args[0]} could not unmount {path}: {e}") from e
    if not result.success:
        raise OSError(f"{' '.join(args[:2])} {path} failed: {result.error_text}")


def release_resource(kind: ResourceKind, path: Path) -> None:
    """Release one resource without consulting any tracker state.

    Image mounts are unmounted without write-back. Scratch directories
    are deleted unless something is still mounted on them.

    Raises:
        OSError: If the resource could not be released, including when
            the unmount tool hangs past its timeout.
    """
    if kind == ResourceKind.IMAGE_MOUNT:
        if os.path.ismount(path):
            logger.warning("Unmounting image at %s without committing", path)
            _unmount(["wimlib-imagex", "unmount", str(path)], path)
    elif kind == ResourceKind.MOUNT:
        if os.path.ismount(path):
            logger.info("Unmounting %s", path)
            _unmount(["umount", str(path)], path)
    elif kind == ResourceKind.SCRATCH_DIR:
        if os.path.ismount(path):
            raise OSError(f"Refusing to delete {path}: still a mount point")
        if path.exists():
            logger.debug("Removing scratch directory %s", path)
            shutil.rmtree(path)



class ResourceTracker:
    """Owns the mount points and scratch directories of one pipeline run.

    Use as a context manager; everything still held when the block exits
    is released in reverse acquisition order.

    Example:
        >>> with ResourceTracker() as tracker:
        ...     work = tracker.make_scratch_dir("trim-")
        ...     handle = tracker.register_image_mount(work / "mount")
    """

    def __init__(self, ledger_path: Path | None = None, scratch_root: Path | None = None) -> None:
        """Initialize the tracker.

        Args:
            ledger_path: Where registrations are mirrored.
                Default: ~/.local/state/winreboot/open-resources.json
            scratch_root: Parent directory for make_scratch_dir().
                Default: the system temp directory.
        """
        self._ledger_path = ledger_path if ledger_path is not None else get_ledger_path()
        self._scratch_root = scratch_root
        self._held: list[ResourceHandle] = []

    def __enter__(self) -> ResourceTracker:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if exc_type is not None:
            logger.warning("Aborting (%s); releasing temporary resources", exc_type.__name__)
        self.sweep()

    @property
    def held(self) -> list[ResourceHandle]:
        """Handles currently held, in acquisition order."""
        return list(self._held)

    @property
    def ledger_path(self) -> Path:
        return self._ledger_path

    def is_held(self, path: Path, kind: ResourceKind | None = None) -> bool:
        """Check whether a path is currently registered."""
        return any(h.path == path and (kind is None or h.kind == kind) for h in self._held)

    # --- registration -----------------------------------------------------

    def register_image_mount(self, mount_point: Path) -> ResourceHandle:
        """Register a read-write image mount before mounting it.

        Raises:
            SessionAlreadyOpenError: If the mount point already has an open session.
        """
        if self.is_held(mount_point, ResourceKind.IMAGE_MOUNT):
            msg = f"An image session is already open at {mount_point}"
            raise SessionAlreadyOpenError(msg)
        return self._register(ResourceKind.IMAGE_MOUNT, mount_point)

    def register_mount(self, mount_point: Path) -> ResourceHandle:
        """Register a device or loop mount before mounting it."""
        if self.is_held(mount_point, ResourceKind.MOUNT):
            msg = f"{mount_point} is already registered as a mount"
            raise SessionAlreadyOpenError(msg)
        return self._register(ResourceKind.MOUNT, mount_point)

    def register_scratch_dir(self, path: Path) -> ResourceHandle:
        """Register an existing or soon-to-exist directory for deletion."""
        return self._register(ResourceKind.SCRATCH_DIR, path)

    def make_scratch_dir(self, prefix: str = "winreboot-") -> Path:
        """Create and register a fresh temporary directory.

        Returns:
            Path to the new directory.
        """
        if self._scratch_root is not None:
            self._scratch_root.mkdir(parents=True, exist_ok=True)
        path = Path(tempfile.mkdtemp(prefix=prefix, dir=self._scratch_root))
        self.register_scratch_dir(path)
        return path

    def _register(self, kind: ResourceKind, path: Path) -> ResourceHandle:
        handle = ResourceHandle(kind=kind, path=path)
        self._held.append(handle)
        self._write_ledger()
        logger.debug("Registered %s %s", kind.value, path)
        return handle

    # --- release ----------------------------------------------------------

    def release(self, handle: ResourceHandle) -> None:
        """Release a single handle now. Releasing twice is a no-op.

        Raises:
            OSError: If the release fails; the handle stays registered.
        """
        if handle not in self._held:
            return
        release_resource(handle.kind, handle.path)
        self.forget(handle)

    def forget(self, handle: ResourceHandle) -> None:
        """Drop a handle whose resource was already released by its owner."""
        if handle in self._held:
            self._held.remove(handle)
            self._write_ledger()

    def sweep(self) -> list[ResourceHandle]:
        """Release everything still held, newest first.

        A failure on one handle is logged and the sweep continues.

        Returns:
            Handles that could not be released.
        """
        failed: list[ResourceHandle] = []
        for handle in reversed(self.held):
            if handle.kind == ResourceKind.SCRATCH_DIR and any(
                f.path.is_relative_to(handle.path) for f in failed
            ):
                logger.error("Keeping %s: it still contains an unreleased mount", handle.path)
                failed.append(handle)
                continue
            try:
                release_resource(handle.kind, handle.path)
            except OSError as e:
                logger.error("Could not release %s %s: %s", handle.kind.value, handle.path, e)
                failed.append(handle)
                continue
            self._held.remove(handle)
        self._write_ledger()
        return failed

    def recover_stale(self) -> int:
        """Release resources left behind by a process that died abnormally.

        Entries owned by a still-running process are left alone.

        Returns:
            Number of stale resources released.
        """
        entries = self._read_ledger()
        if not entries:
            return 0

        own_pid = os.getpid()
        remaining: list[dict[str, object]] = []
        stuck: list[Path] = []
        recovered = 0
        for entry in reversed(entries):
            pid = int(entry.get("pid", 0))  # type: ignore[call-overload]
            if pid != own_pid and pid > 0 and _pid_alive(pid):
                logger.warning("Leaving %s: owned by running process %d", entry["path"], pid)
                remaining.insert(0, entry)
                continue
            kind = ResourceKind(str(entry["kind"]))
            path = Path(str(entry["path"]))
            if kind == ResourceKind.SCRATCH_DIR and any(p.is_relative_to(path) for p in stuck):
                logger.error("Keeping stale %s: it still contains an unreleased mount", path)
                remaining.insert(0, entry)
                continue
            try:
                release_resource(kind, path)
            except OSError as e:
                logger.error("Could not release stale %s %s: %s", kind.value, path, e)
                remaining.insert(0, entry)
                stuck.append(path)
                continue
            recovered += 1

        self._persist(remaining)
        if recovered:
            logger.warning("Released %d resource(s) left by an earlier run", recovered)
        return recovered

    # --- ledger -----------------------------------------------------------

    def ledger_entries(self) -> list[dict[str, object]]:
        """Registrations recorded in the ledger by any process."""
        return self._read_ledger()

    def _read_ledger(self) -> list[dict[str, object]]:
        if not self._ledger_path.exists():
            return []
        try:
            data = json.loads(self._ledger_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable resource ledger %s: %s", self._ledger_path, e)
            return []
        if not isinstance(data, list):
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def _write_ledger(self) -> None:
        pid = os.getpid()
        others = [e for e in self._read_ledger() if e.get("pid") != pid]
        mine = [h.to_dict(pid) for h in self._held]
        self._persist(others + mine)

    def _persist(self, entries: list[dict[str, object]]) -> None:
        try:
            if not entries:
                self._ledger_path.unlink(missing_ok=True)
                return
            self._ledger_path.parent.mkdir(parents=True, exist_ok=True)
            tmp = self._ledger_path.with_suffix(".tmp")
            tmp.write_text(json.dumps(entries, indent=2), encoding="utf-8")
            os.replace(tmp, self._ledger_path)
        except OSError as e:
            logger.warning("Could not update resource ledger %s: %s", self._ledger_path, e)


def _raise_system_exit(signum: int, _frame: object) -> None:
    raise SystemExit(128 + signum)


def install_signal_handlers() -> None:
    """Turn SIGTERM and SIGHUP into SystemExit so scoped release runs."""
    for sig in (signal.SIGTERM, signal.SIGHUP):
        signal.signal(sig, _raise_system_exit)
