"""Stores externally taken screenshots under the capture layout."""

from __future__ import annotations

import io
import logging
import time

from PIL import Image, UnidentifiedImageError

from snapdiff.errors import CaptureError, ValidationError
from snapdiff.models.snapshot import DIFF_LABEL, CaptureResult, TemporalLabel
from snapdiff.storage import ImageStore

logger = logging.getLogger(__name__)


def store_upload(
    store: ImageStore,
    time_label: str | None,
    test_id: str | None,
    data: bytes,
    max_bytes: int | None = None,
) -> CaptureResult:
    """Decode an uploaded image and store it as PNG at the (time, testId) key."""
    if not time_label:
        raise ValidationError("time", "time is required")
    try:
        label = TemporalLabel(time_label)
    except ValueError:
        raise ValidationError("time", "time must be 'before' or 'after'") from None
    test_id = store.validate_test_id(test_id)

    if not data:
        raise ValidationError("file", "file is required")
    if max_bytes is not None and len(data) > max_bytes:
        raise ValidationError("file", f"file exceeds the {max_bytes} byte upload limit")
    try:
        with Image.open(io.BytesIO(data)) as img:
            image = img.convert("RGBA")
    except (UnidentifiedImageError, OSError) as e:
        raise ValidationError("file", f"file is not a readable image: {e}") from None
    except Image.DecompressionBombError as e:
        raise ValidationError("file", f"image is too large: {e}") from None

    try:
        store.ensure_dirs(label, DIFF_LABEL)
        store.save_image(label, test_id, image)
    except OSError as e:
        logger.exception("Storing upload %s/%s failed", label.value, test_id)
        raise CaptureError("Failed to store upload", details=str(e)) from e
    logger.info("Stored upload as %s/%s (%dx%d)", label.value, test_id, *image.size)
    return CaptureResult(
        image_path=store.url_for(label, test_id),
        time=label,
        test_id=test_id,
        timestamp=time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
    )
