"""Error hierarchy for the media preparation pipeline.

Every fatal error carries a process exit code and a remediation hint so the
CLI can tell the operator what failed, why, and what to do next.

Exception Hierarchy:
    WinRebootError (base, exit 1)
        ├── MissingDependencyError (10)
        ├── InsufficientSpaceError (30)
        ├── ImageOperationError (40)
        │   ├── ConversionFailedError
        │   ├── SplitFailedError
        │   ├── MountFailedError
        │   ├── CommitFailedError
        │   └── ProfileError
        │       ├── ProfileNotFoundError
        │       ├── OverrideNotFoundError
        │       └── ProfileCycleError
        ├── BootConfigError (50)
        ├── PermissionDeniedError (60)
        └── MediaError (1)
            ├── ConfirmationMismatchError
            ├── DeviceNotFoundError
            ├── NoTargetDeviceError
            ├── FormatFailedError
            └── CopyFailedError
"""

EXIT_GENERIC = 1
EXIT_MISSING_DEPENDENCY = 10
EXIT_INSUFFICIENT_SPACE = 30
EXIT_IMAGE_OPERATION = 40
EXIT_BOOT_CONFIG = 50
EXIT_PERMISSION = 60


class WinRebootError(Exception):
    """Base exception for all fatal pipeline errors."""

    exit_code: int = EXIT_GENERIC
    hint: str = "Review the message above, then run `winreboot cleanup` and start over."

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        if hint is not None:
            self.hint = hint


class MissingDependencyError(WinRebootError):
    """A required external tool is not installed."""

    exit_code = EXIT_MISSING_DEPENDENCY

    def __init__(self, missing: list[str]) -> None:
        self.missing = missing
        super().__init__(
            f"Missing required commands: {', '.join(missing)}",
            hint=(
                "Run `winreboot check` to list what is missing, then install it "
                "(Debian/Ubuntu: wimtools p7zip-full cabextract unzip parted "
                "dosfstools xorriso libhivex-bin)."
            ),
        )


class InsufficientSpaceError(WinRebootError):
    """Not enough free space for the working tree or the target."""

    exit_code = EXIT_INSUFFICIENT_SPACE

    def __init__(self, path: str, required_mb: int, available_mb: int) -> None:
        self.path = path
        self.required_mb = required_mb
        self.available_mb = available_mb
        super().__init__(
            f"Insufficient disk space in {path}: need {required_mb} MB, have {available_mb} MB",
            hint=(
                "Free disk space (`winreboot cleanup --all` removes working files) "
                "or point work_dir in the config at a larger partition."
            ),
        )


class PermissionDeniedError(WinRebootError):
    """The operation needs privileges the process does not have."""

    exit_code = EXIT_PERMISSION
    hint = "Re-run the command with sudo, and check ownership of the work directory."


class ImageOperationError(WinRebootError):
    """Base for failures while converting, mounting or committing an image."""

    exit_code = EXIT_IMAGE_OPERATION
    hint = (
        "Check that wimlib-imagex works (`wimlib-imagex --version`), that there is "
        "enough free space, and re-download the source ISO if it may be corrupt."
    )


class ConversionFailedError(ImageOperationError):
    """Exporting the archival image into the mountable format failed."""

    hint = "The source image is likely corrupt or incompatible; re-download the ISO."


class SplitFailedError(ImageOperationError):
    """Splitting an oversized image into FAT32-sized parts failed."""


class MountFailedError(ImageOperationError):
    """An image index could not be mounted read-write."""


class CommitFailedError(ImageOperationError):
    """Writing a servicing session back into its image failed."""


class ProfileError(ImageOperationError):
    """Base for removal-profile resolution errors."""

    hint = "List available presets with `winreboot presets list`."


class ProfileNotFoundError(ProfileError):
    """A named or included removal profile does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Removal profile not found: {name}")


class OverrideNotFoundError(ProfileError):
    """The user-supplied override list does not exist."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(f"Custom removal list not found: {path}")


class ProfileCycleError(ProfileError):
    """A removal profile includes itself directly or transitively."""

    def __init__(self, chain: list[str]) -> None:
        self.chain = chain
        super().__init__(f"Removal profile include cycle: {' -> '.join(chain)}")


class BootConfigError(WinRebootError):
    """Writing or validating the boot menu entry failed."""

    exit_code = EXIT_BOOT_CONFIG
    hint = (
        "Verify GRUB is installed (`which grub-mkconfig`), that the system boots in "
        "UEFI mode with Secure Boot disabled, and run the command as root."
    )


class MediaError(WinRebootError):
    """Base for target device selection and provisioning errors."""


class ConfirmationMismatchError(MediaError):
    """The operator's confirmation did not match the target device path."""

    def __init__(self, device: str) -> None:
        self.device = device
        super().__init__(
            f"Confirmation did not match {device}. Aborting; nothing was changed.",
            hint=f"Type the full device path exactly as shown: {device}",
        )


class DeviceNotFoundError(MediaError):
    """The requested device is not a usable target."""

    def __init__(self, device: str, reason: str = "not found") -> None:
        self.device = device
        super().__init__(
            f"Device {device} cannot be used: {reason}",
            hint="List usable devices with `winreboot media list`.",
        )


class NoTargetDeviceError(MediaError):
    """Writing to a partition was requested without naming a device."""

    def __init__(self, message: str = "No target device given") -> None:
        super().__init__(
            message,
            hint="Name the device to write, e.g. `winreboot media write ISO /dev/sdX`.",
        )


class FormatFailedError(MediaError):
    """Partitioning or formatting the target device failed."""

    hint = (
        "Make sure nothing is using the device (`lsblk`, `fuser -m`), then retry. "
        "The device has already been wiped."
    )


class CopyFailedError(MediaError):
    """Copying the prepared tree onto the target failed."""

    hint = "Check the device for errors and free space, then run the write again."
