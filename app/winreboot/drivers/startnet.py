"""Pre-boot startup script rewrite.

WinPE runs Windows/System32/startnet.cmd from boot.wim index 2 before
Setup starts. The replacement initializes WinPE, loads every staged INF
with drvload and then launches Setup.
"""

import logging
import shutil
from pathlib import Path, PureWindowsPath

from winreboot.core.paths import DRIVER_STAGING_PATH, STARTNET_PATH, media_path

logger = logging.getLogger(__name__)

BOOT_IMAGE_SETUP_INDEX = 2

# Drive letters WinPE may assign to the installer media
_DRIVE_LETTERS = "C D E F G H I J K L M N O P Q R S T U V W Y Z"


def _staging_windows_path() -> str:
    return str(PureWindowsPath(*DRIVER_STAGING_PATH.parts))


def render_startnet() -> str:
    """Render the startnet.cmd that loads staged drivers before Setup.

    The installer media gets a drive letter only at boot, so the script
    probes each letter for the staging directory.
    """
    staging = _staging_windows_path()
    lines = [
        "@echo off",
        "wpeinit",
        "",
        "rem Load OEM-staged INF drivers (storage, network) before Setup",
        "set DRVROOT=",
        f"for %%D in ({_DRIVE_LETTERS}) do (",
        f'  if not defined DRVROOT if exist "%%D:\\{staging}" set "DRVROOT=%%D:\\{staging}"',
        ")",
        "if defined DRVROOT (",
        '  for /r "%DRVROOT%" %%I in (*.inf) do (',
        '    drvload "%%I" >nul 2>&1',
        "  )",
        ")",
        "",
        "rem Launch Windows Setup",
        "X:\\sources\\setup.exe",
    ]
    # cmd.exe expects CRLF line endings
    return "\r\n".join(lines) + "\r\n"


def patch_startnet(mount_root: Path) -> Path:
    """Back up and rewrite startnet.cmd inside a mounted boot image.

    The original script is copied to startnet.cmd.orig the first time
    only, so repeated runs keep the pristine backup.

    Args:
        mount_root: Mount point of boot.wim index 2.

    Returns:
        Path of the rewritten script.

    Raises:
        FileNotFoundError: If the image has no startnet.cmd.
    """
    script = media_path(mount_root, STARTNET_PATH)
    if not script.is_file():
        msg = f"startnet.cmd not found in boot image at {script}"
        raise FileNotFoundError(msg)

    backup = script.with_name(script.name + ".orig")
    if not backup.exists():
        shutil.copy2(script, backup)
        logger.debug("Backed up %s", script.name)

    script.write_bytes(render_startnet().encode("ascii"))
    logger.info("Rewrote %s to load staged drivers", STARTNET_PATH)
    return script
