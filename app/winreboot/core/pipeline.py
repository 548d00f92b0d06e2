"""End-to-end media preparation pipeline.

Runs every stage in a fixed order inside one ResourceTracker:

    recover stale resources -> preflight -> resolve preset -> extract ISO
    -> convert -> remove PATH: entries from the media tree
    -> service each index with the name tokens -> inject drivers
    -> split (FAT32 targets) -> rebuild ISO (ISO outputs) -> provision

Each stage finishes (commit or abandon included) before the next starts.
Leaving the tracker's block releases every mount and scratch directory,
whether the run succeeded or not.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path

from winreboot.core.capabilities import (
    Capabilities,
    check_free_space,
    detect_capabilities,
    require_root,
)
from winreboot.core.config import Settings
from winreboot.core.errors import (
    ConfirmationMismatchError,
    ImageOperationError,
    NoTargetDeviceError,
)
from winreboot.core.resources import ResourceTracker
from winreboot.drivers.injector import DriverInjector
from winreboot.media.devices import find_target
from winreboot.media.provisioner import MediaProvisioner, confirmation_matches
from winreboot.media.tree import extract_iso, rebuild_iso
from winreboot.models.driver import InjectionReport
from winreboot.models.image import ImageContainer
from winreboot.models.media import Bootloader, DeploymentMode, MediaTarget, ProvisionResult
from winreboot.servicing.converter import ImageFormatConverter, find_install_image
from winreboot.servicing.presets import PresetResolver, is_noop_profile
from winreboot.servicing.removal import RemovalReport, apply_directives
from winreboot.servicing.session import service
from winreboot.servicing.wimlib import WIMLIB

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PipelineOptions:
    """What one pipeline run should do.

    Attributes:
        iso: Source installer ISO.
        preset: Removal profile name ("vanilla" keeps the image untouched).
        custom_list: Extra removal list appended after the profile.
        image_index: Install image index to service; None services all.
        registry_bypass: Merge the hardware-check bypass into each index.
        drivers_dir: Driver source directory; None skips injection.
        mode: Deployment mode; None only builds the output ISO.
        target_device: Device to wipe for COPY_TO_PARTITION.
        confirmation: Operator's retyped device path.
        bootloader: Boot path recorded for copied media.
        output_iso: Where to write the rebuilt ISO.
    """

    iso: Path
    preset: str = "minimal"
    custom_list: Path | None = None
    image_index: int | None = None
    registry_bypass: bool = True
    drivers_dir: Path | None = None
    mode: DeploymentMode | None = None
    target_device: str | None = None
    confirmation: str | None = None
    bootloader: Bootloader = Bootloader.GRUB
    output_iso: Path | None = None

    @property
    def builds_iso(self) -> bool:
        return self.mode != DeploymentMode.COPY_TO_PARTITION


@dataclass(slots=True)
class PipelineResult:
    """Outcome of a pipeline run.

    Attributes:
        container: Final state of the install image.
        removal: What was removed from the media tree and the image indices.
        registry_bypass: Whether the bypass was requested for servicing.
        injection: Driver injection outcome, if injection ran.
        output_iso: Rebuilt ISO, if one was built.
        provision: Provisioning outcome, if a mode was requested.
        recovered: Stale resources released at start-up.
    """

    container: ImageContainer | None = None
    removal: RemovalReport = field(default_factory=RemovalReport)
    registry_bypass: bool = False
    injection: InjectionReport | None = None
    output_iso: Path | None = None
    provision: ProvisionResult | None = None
    recovered: int = 0

    @property
    def warnings(self) -> list[str]:
        messages = [f"Could not remove {path}: {error}" for path, error in self.removal.failed]
        if self.injection is not None:
            messages.extend(self.injection.warnings)
        return messages


class Pipeline:
    """Runs the media preparation stages for one invocation.

    Attributes:
        settings: Loaded user settings.
        capabilities: Host tool set, probed once.
    """

    def __init__(
        self,
        settings: Settings,
        capabilities: Capabilities | None = None,
        tracker: ResourceTracker | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: User settings.
            capabilities: Host tool set; probed when None.
            tracker: Resource tracker; a new one scoped to work_dir when None.
        """
        self.settings = settings
        self.capabilities = capabilities if capabilities is not None else detect_capabilities()
        self._tracker = tracker
        self._resolver = PresetResolver(search_dirs=[settings.presets_dir])

    def run(self, options: PipelineOptions) -> PipelineResult:
        """Run every stage the options ask for.

        Raises:
            WinRebootError: Any fatal error; resources are released first.
        """
        tracker = self._tracker or ResourceTracker(scratch_root=self.settings.work_dir)
        result = PipelineResult()

        with tracker:
            result.recovered = tracker.recover_stale()
            target = self._preflight(options)

            directives = self._resolver.resolve(options.preset, options.custom_list)
            media_directives = [d for d in directives if d.is_path]
            image_directives = [d for d in directives if d.is_token]
            bypass = options.registry_bypass and not is_noop_profile(options.preset)
            result.registry_bypass = bypass

            tree = tracker.make_scratch_dir("tree-")
            extract_iso(options.iso, tree, self.capabilities, tracker)

            install_image = find_install_image(tree)
            if install_image is None:
                msg = f"No sources/install.wim or install.esd in {options.iso.name}"
                raise ImageOperationError(msg, hint="Check that this is a Windows installer ISO.")

            converter = ImageFormatConverter(self.capabilities, self.settings.split_size_mb)
            container = converter.ensure_serviceable(
                ImageContainer.from_path(install_image), allow_split=False
            )

            if media_directives:
                result.removal = apply_directives(tree, media_directives)
                if not container.path.exists():
                    msg = f"A PATH: entry removed {container.path.name} from the media tree"
                    raise ImageOperationError(msg, hint="Drop PATH: entries under sources/.")

            mount_root = tracker.make_scratch_dir("mount-")
            image_removal = service(
                container,
                options.image_index,
                image_directives,
                bypass,
                tracker=tracker,
                capabilities=self.capabilities,
                mount_root=mount_root,
            )
            result.removal.merge(image_removal)

            if options.drivers_dir is not None:
                injector = DriverInjector(self.capabilities, tracker)
                result.injection = injector.inject(tree, options.drivers_dir)

            if options.mode == DeploymentMode.COPY_TO_PARTITION:
                container = converter.split_if_oversized(container)
            result.container = container

            if options.builds_iso:
                output = options.output_iso or self.settings.out_dir / "win11.iso"
                result.output_iso = rebuild_iso(tree, output, self.capabilities)

            if options.mode is not None:
                source = result.output_iso if result.output_iso is not None else tree
                result.provision = self._provisioner(tracker).provision(
                    source,
                    target,
                    options.mode,
                    confirmation=options.confirmation,
                    bootloader=options.bootloader,
                )

        return result

    def _preflight(self, options: PipelineOptions) -> MediaTarget | None:
        """Fail on environmental problems before anything is changed.

        Returns:
            The target device for COPY_TO_PARTITION, else None.
        """
        caps = self.capabilities
        required = [WIMLIB]
        if not caps.has_7z:
            required.append("mount")
        if options.builds_iso:
            required.append(caps.iso_tool or "xorriso")
        if options.mode == DeploymentMode.COPY_TO_PARTITION:
            required.extend(["lsblk", "parted", "mkfs.fat", "mount", "umount"])
        caps.require(*required)

        if not options.iso.is_file():
            msg = f"ISO not found: {options.iso}"
            raise ImageOperationError(msg, hint="Pass the path of a downloaded Windows 11 ISO.")

        if options.mode is not None or not caps.has_7z:
            require_root()

        check_free_space(self.settings.work_dir, self.settings.min_free_mb)

        if options.mode != DeploymentMode.COPY_TO_PARTITION:
            return None
        if options.target_device is None:
            raise NoTargetDeviceError()
        target = find_target(options.target_device)
        # Checked again right before formatting; failing here saves the long build
        if not confirmation_matches(target, options.confirmation):
            raise ConfirmationMismatchError(target.path)
        return target

    def _provisioner(self, tracker: ResourceTracker) -> MediaProvisioner:
        return MediaProvisioner(
            self.capabilities,
            tracker,
            volume_label=self.settings.volume_label,
            grub_entry_path=self.settings.grub_custom_path,
            iso_boot_path=self.settings.iso_boot_path,
        )
