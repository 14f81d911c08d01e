"""Comparator — pixel diff between the before and after captures of a test."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal

from PIL import Image, UnidentifiedImageError
from pixelmatch.contrib.PIL import pixelmatch

from snapdiff.errors import ComparisonError, DimensionMismatchError, NotFoundError
from snapdiff.models.snapshot import DIFF_LABEL, ComparisonResult, CompareRequest, TemporalLabel
from snapdiff.storage import ImageStore

logger = logging.getLogger(__name__)


def diff_percentage(diff_pixels: int, width: int, height: int) -> str:
    """Share of differing pixels as a percentage string with two decimals."""
    total = width * height
    if total == 0:
        return "0.00"
    # Half-up on the binary value of the float, like JavaScript toFixed
    value = Decimal(diff_pixels / total * 100)
    return str(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def diff_images(before: Image.Image, after: Image.Image, threshold: float) -> tuple[int, Image.Image]:
    """Run pixelmatch on two same-sized RGBA images.

    Returns the number of differing pixels and the rendered diff overlay.
    """
    output = Image.new("RGBA", before.size)
    count = pixelmatch(before, after, output, threshold=threshold)
    return count, output


class Comparator:
    """Compares stored before/after images and writes the diff image."""

    def __init__(self, store: ImageStore, threshold: float = 0.1):
        self.store = store
        self.threshold = threshold

    def compare(self, request: CompareRequest) -> ComparisonResult:
        test_id = self.store.validate_test_id(request.test_id)

        missing = [
            label.value for label in (TemporalLabel.BEFORE, TemporalLabel.AFTER)
            if not self.store.exists(label, test_id)
        ]
        if missing:
            logger.info("Compare %s: missing %s", test_id, ", ".join(missing))
            raise NotFoundError(test_id, missing)

        try:
            before = self.store.open_image(TemporalLabel.BEFORE, test_id)
            after = self.store.open_image(TemporalLabel.AFTER, test_id)
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
            logger.warning("Compare %s: could not decode images: %s", test_id, e)
            raise ComparisonError(details=str(e)) from e

        if before.size != after.size:
            raise DimensionMismatchError(before.size, after.size)

        width, height = before.size
        try:
            count, overlay = diff_images(before, after, self.threshold)
            self.store.ensure_dirs(DIFF_LABEL)
            self.store.save_image(DIFF_LABEL, test_id, overlay)
        except Exception as e:
            logger.exception("Compare %s failed", test_id)
            raise ComparisonError(details=str(e)) from e

        percentage = diff_percentage(count, width, height)
        logger.info("Compared %s: %d/%d pixels differ (%s%%)",
                    test_id, count, width * height, percentage)
        return ComparisonResult(
            test_id=test_id,
            diff_pixels=count,
            diff_percentage=percentage,
            width=width,
            height=height,
            before_url=self.store.url_for(TemporalLabel.BEFORE, test_id),
            after_url=self.store.url_for(TemporalLabel.AFTER, test_id),
            diff_url=self.store.url_for(DIFF_LABEL, test_id),
        )
