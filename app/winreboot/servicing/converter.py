"""Image format conversion and FAT32 splitting.

Installer ISOs ship install.esd (archival, read-only) or install.wim.
Servicing needs a WIM; FAT32 media need every file below 4 GiB, so an
oversized WIM is split into install.swm, install2.swm, ... parts.
"""

import logging
from pathlib import Path

from winreboot.core.capabilities import Capabilities
from winreboot.core.config import FAT32_MAX_FILE_BYTES
from winreboot.core.errors import ConversionFailedError, SplitFailedError
from winreboot.core.paths import INSTALL_IMAGE_DIR, media_path
from winreboot.models.image import ImageContainer, ImageFormat, ImageState
from winreboot.servicing import wimlib

logger = logging.getLogger(__name__)

DEFAULT_SPLIT_SIZE_MB = 3800


def find_install_image(tree: Path) -> Path | None:
    """Locate the install image inside an extracted media tree.

    Args:
        tree: Root of the media tree.

    Returns:
        Path to sources/install.wim, install.esd or install.swm (in that
        order of preference), or None if none exists.
    """
    sources = media_path(tree, INSTALL_IMAGE_DIR)
    for fmt in (ImageFormat.WIM, ImageFormat.ESD, ImageFormat.SWM):
        candidate = sources / f"install.{fmt.value}"
        if candidate.is_file():
            return candidate
    return None


def list_split_parts(first_part: Path) -> list[Path]:
    """Return the parts of a split set in order, stopping at the first gap.

    install.swm is part 1; install2.swm, install3.swm, ... follow.
    """
    parts = [first_part] if first_part.is_file() else []
    if not parts:
        return parts
    number = 2
    while True:
        candidate = first_part.with_name(f"{first_part.stem}{number}{first_part.suffix}")
        if not candidate.is_file():
            break
        parts.append(candidate)
        number += 1
    return parts


class ImageFormatConverter:
    """Brings an image container into a form that can be serviced and hosted.

    Attributes:
        split_size_mb: Part size for splitting; strictly below the ceiling.
        ceiling_bytes: Largest single file the target filesystem accepts.
    """

    def __init__(
        self,
        capabilities: Capabilities,
        split_size_mb: int = DEFAULT_SPLIT_SIZE_MB,
        ceiling_bytes: int = FAT32_MAX_FILE_BYTES,
    ) -> None:
        """Initialize the converter.

        Raises:
            ValueError: If a part of split_size_mb would not fit under the ceiling.
        """
        if split_size_mb * 1024 * 1024 >= ceiling_bytes:
            msg = f"Split size {split_size_mb} MiB is not below the {ceiling_bytes} byte ceiling"
            raise ValueError(msg)
        self._capabilities = capabilities
        self.split_size_mb = split_size_mb
        self.ceiling_bytes = ceiling_bytes

    def ensure_serviceable(
        self, container: ImageContainer, *, allow_split: bool = True
    ) -> ImageContainer:
        """Convert an archival container and split it if it is too large.

        Args:
            container: The container as found in the media tree.
            allow_split: Split an oversized result. The pipeline passes False
                before servicing (a split set cannot be mounted) and calls
                :meth:`split_if_oversized` once servicing is done.

        Returns:
            A CONVERTED container, or a SPLIT one when it had to be split.

        Raises:
            MissingDependencyError: If wimlib-imagex is missing.
            ConversionFailedError: If the export fails.
            SplitFailedError: If splitting fails or the part set is incomplete.
        """
        if container.state == ImageState.SPLIT:
            logger.info("%s is already split; nothing to convert", container.path.name)
            return container

        self._capabilities.require(wimlib.WIMLIB)

        if container.state == ImageState.SEALED:
            container = self.convert(container)

        if allow_split:
            container = self.split_if_oversized(container)
        return container

    def convert(self, container: ImageContainer) -> ImageContainer:
        """Export every index of an ESD into a WIM, then delete the ESD.

        Raises:
            ConversionFailedError: If wimlib-imagex export fails.
        """
        source = container.path
        destination = source.with_suffix(".wim")
        logger.info("Converting %s to %s (this may take a while)", source.name, destination.name)

        result = wimlib.export_all(source, destination)
        if not result.success:
            destination.unlink(missing_ok=True)
            msg = f"Exporting {source.name} to WIM failed: {result.error_text}"
            raise ConversionFailedError(msg)
        if not destination.is_file():
            msg = f"Export reported success but {destination} does not exist"
            raise ConversionFailedError(msg)

        source.unlink()
        logger.info("Converted %s; removed %s", destination.name, source.name)
        return ImageContainer(
            path=destination,
            state=ImageState.CONVERTED,
            indices=container.indices,
        )

    def needs_split(self, container: ImageContainer) -> bool:
        """Check whether a converted container exceeds the ceiling."""
        if container.state != ImageState.CONVERTED:
            return False
        return container.path.stat().st_size > self.ceiling_bytes

    def split_if_oversized(self, container: ImageContainer) -> ImageContainer:
        """Split a converted container that exceeds the ceiling.

        The unsplit file is removed only after the part set is verified.

        Raises:
            SplitFailedError: If the split fails or leaves an incomplete set.
        """
        if not self.needs_split(container):
            logger.debug("%s fits on FAT32; not splitting", container.path.name)
            return container

        self._capabilities.require(wimlib.WIMLIB)

        source = container.path
        first_part = source.with_suffix(".swm")
        logger.info(
            "%s is %d bytes; splitting into %d MiB parts",
            source.name,
            source.stat().st_size,
            self.split_size_mb,
        )

        result = wimlib.split(source, first_part, self.split_size_mb)
        if not result.success:
            self._remove_parts(first_part)
            msg = f"Splitting {source.name} failed: {result.error_text}"
            raise SplitFailedError(msg)

        parts = self._verify_parts(first_part)
        source.unlink()
        logger.info("Split %s into %d part(s)", source.name, len(parts))
        return ImageContainer(
            path=first_part,
            state=ImageState.SPLIT,
            indices=container.indices,
            parts=tuple(parts),
        )

    def _verify_parts(self, first_part: Path) -> list[Path]:
        parts = list_split_parts(first_part)
        if not parts:
            msg = f"Split finished but {first_part.name} is missing"
            raise SplitFailedError(msg)

        strays = [
            p
            for p in first_part.parent.glob(f"{first_part.stem}*.swm")
            if p not in parts
        ]
        if strays:
            msg = f"Split part set is not contiguous: {', '.join(sorted(p.name for p in strays))}"
            raise SplitFailedError(msg)

        for part in parts:
            size = part.stat().st_size
            if size == 0 or size > self.ceiling_bytes:
                msg = f"Split part {part.name} has invalid size {size}"
                raise SplitFailedError(msg)
        return parts

    def _remove_parts(self, first_part: Path) -> None:
        for part in first_part.parent.glob(f"{first_part.stem}*.swm"):
            part.unlink(missing_ok=True)
