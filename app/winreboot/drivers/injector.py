"""Driver injection into a prepared media tree.

Steps:
    1. Unpack vendor archives from the driver directory into scratch space.
    2. Find every directory holding an .inf, in the source and scratch areas.
    3. Copy each into sources/$OEM$/$$/INFDRIVERS/DriverSetN.
    4. Rewrite startnet.cmd in boot.wim index 2 so WinPE drvloads them,
       inside a servicing session that is committed before returning.
"""

import logging
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.core.errors import ImageOperationError
from winreboot.core.paths import BOOT_IMAGE_PATH, DRIVER_STAGING_PATH, media_path
from winreboot.core.resources import ResourceTracker
from winreboot.drivers.discovery import find_inf_roots, stage_driver_sets
from winreboot.drivers.extract import extract_payloads
from winreboot.drivers.startnet import BOOT_IMAGE_SETUP_INDEX, patch_startnet
from winreboot.models.driver import InjectionReport
from winreboot.models.image import ImageContainer
from winreboot.servicing.session import ServicingSession

logger = logging.getLogger(__name__)


class DriverInjector:
    """Stages third-party drivers and makes WinPE load them.

    Attributes:
        capabilities: Host tool set, used to decide which archives can be unpacked.
    """

    def __init__(self, capabilities: Capabilities, tracker: ResourceTracker) -> None:
        self.capabilities = capabilities
        self._tracker = tracker

    def inject(self, media_tree: Path, driver_source_dir: Path) -> InjectionReport:
        """Inject drivers from driver_source_dir into media_tree.

        A missing or empty source directory is not an error.

        Args:
            media_tree: Root of the extracted installer tree.
            driver_source_dir: Directory the operator filled with drivers.

        Returns:
            InjectionReport; ``staged_count`` is the number of DriverSets.

        Raises:
            ImageOperationError: If boot.wim or its startnet.cmd is missing.
            MountFailedError: If boot.wim cannot be mounted.
            CommitFailedError: If the boot image cannot be written back.
        """
        report = InjectionReport()
        if not driver_source_dir.is_dir():
            logger.info("No driver directory at %s; skipping driver injection", driver_source_dir)
            return report

        scratch = self._tracker.make_scratch_dir("drivers-")
        extraction = extract_payloads(driver_source_dir, scratch, self.capabilities)
        report.extracted = extraction.extracted
        report.skipped = extraction.skipped

        roots = find_inf_roots(driver_source_dir, scratch)
        if not roots:
            logger.warning("No .inf drivers found in %s; skipping", driver_source_dir)
            return report

        staging = media_path(media_tree, DRIVER_STAGING_PATH)
        report.driver_sets = stage_driver_sets(roots, staging, exclude=extraction.extracted)

        self._patch_boot_image(media_tree)
        report.boot_image_patched = True

        logger.info(
            "Driver injection complete: %d set(s) staged, %d payload(s) skipped",
            report.staged_count,
            len(report.skipped),
        )
        return report

    def _patch_boot_image(self, media_tree: Path) -> None:
        boot_wim = media_path(media_tree, BOOT_IMAGE_PATH)
        if not boot_wim.is_file():
            msg = f"boot.wim not found at {boot_wim}"
            raise ImageOperationError(msg)

        container = ImageContainer.from_path(boot_wim)
        mount_point = self._tracker.make_scratch_dir("bootwim-")
        logger.info("Patching boot.wim index %d to load staged drivers", BOOT_IMAGE_SETUP_INDEX)
        with ServicingSession(
            container, BOOT_IMAGE_SETUP_INDEX, mount_point, self._tracker, self.capabilities
        ) as session:
            try:
                patch_startnet(mount_point)
            except FileNotFoundError as e:
                raise ImageOperationError(str(e)) from e
            session.commit()
