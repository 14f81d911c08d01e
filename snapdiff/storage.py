"""Image store — maps (label, test id) to files under the storage root."""

from __future__ import annotations

import io
import logging
import os
import tempfile
from pathlib import Path

from PIL import Image

from snapdiff.errors import ValidationError
from snapdiff.models.snapshot import DIFF_LABEL, TemporalLabel

logger = logging.getLogger(__name__)

URL_PREFIX = "/uploads"

_LABELS = {TemporalLabel.BEFORE.value, TemporalLabel.AFTER.value, DIFF_LABEL}


def _label_name(label: TemporalLabel | str) -> str:
    name = label.value if isinstance(label, TemporalLabel) else str(label)
    if name not in _LABELS:
        raise ValueError(f"Unknown storage label: {name!r}")
    return name


class ImageStore:
    """Stores captured and diff images at paths derived from their key.

    Layout::

        <root>/before/<test_id>.png
        <root>/after/<test_id>.png
        <root>/diff/<test_id>.png
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def ensure_dirs(self, *labels: TemporalLabel | str) -> None:
        """Create label directories if absent (idempotent)."""
        for label in labels:
            (self.root / _label_name(label)).mkdir(parents=True, exist_ok=True)

    def validate_test_id(self, test_id: str | None) -> str:
        """Reject identifiers that are empty or could leave their label directory."""
        if test_id is None or not str(test_id).strip():
            raise ValidationError("testId", "testId is required")
        test_id = str(test_id)
        if "\x00" in test_id:
            raise ValidationError("testId", "testId must not contain NUL bytes")
        if "/" in test_id or "\\" in test_id or test_id in (".", ".."):
            raise ValidationError("testId", "testId must be a single path segment")
        # Drive letters and similar forms that resolve elsewhere
        label_dir = (self.root / DIFF_LABEL).resolve()
        candidate = (label_dir / f"{test_id}.png").resolve()
        if candidate.parent != label_dir:
            raise ValidationError("testId", "testId must be a single path segment")
        return test_id

    def path_for(self, label: TemporalLabel | str, test_id: str) -> Path:
        return self.root / _label_name(label) / f"{test_id}.png"

    def url_for(self, label: TemporalLabel | str, test_id: str) -> str:
        return f"{URL_PREFIX}/{_label_name(label)}/{test_id}.png"

    def exists(self, label: TemporalLabel | str, test_id: str) -> bool:
        return self.path_for(label, test_id).is_file()

    def write_bytes(self, label: TemporalLabel | str, test_id: str, data: bytes) -> Path:
        """Atomically write ``data`` at the key's path, replacing any previous file."""
        dest = self.path_for(label, test_id)
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".tmp-", suffix=".png", dir=dest.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp_name, dest)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d bytes to %s", len(data), dest)
        return dest

    def save_image(self, label: TemporalLabel | str, test_id: str, image: Image.Image) -> Path:
        """Encode ``image`` as PNG and store it under the key."""
        buffer = io.BytesIO()
        image.save(buffer, format="PNG")
        return self.write_bytes(label, test_id, buffer.getvalue())

    def open_image(self, label: TemporalLabel | str, test_id: str) -> Image.Image:
        """Decode a stored image into RGBA."""
        with Image.open(self.path_for(label, test_id)) as img:
            return img.convert("RGBA")
