"""Error taxonomy shared by capture, compare and the HTTP layer."""

from __future__ import annotations

from typing import Any, Optional


class SnapdiffError(Exception):
    """Base error; carries the HTTP status and JSON body it maps to."""

    status_code = 500
    summary = "Request failed"

    def __init__(self, message: str | None = None, details: Optional[str] = None):
        super().__init__(message or self.summary)
        self.message = message or self.summary
        self.details = details

    def extra(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            payload["details"] = self.details
        payload.update(self.extra())
        return payload


class ValidationError(SnapdiffError):
    status_code = 400
    summary = "Invalid request"

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field

    def extra(self) -> dict[str, Any]:
        return {"field": self.field}


class NotFoundError(SnapdiffError):
    status_code = 404

    def __init__(self, test_id: str, missing: list[str]):
        sides = " and ".join(missing)
        super().__init__(f"No {sides} image found for test '{test_id}'")
        self.test_id = test_id
        self.missing = list(missing)

    def extra(self) -> dict[str, Any]:
        return {"missing": self.missing}


class DimensionMismatchError(SnapdiffError):
    status_code = 400

    def __init__(self, before: tuple[int, int], after: tuple[int, int]):
        super().__init__(
            f"Image dimensions do not match: before is {before[0]}x{before[1]}, "
            f"after is {after[0]}x{after[1]}"
        )
        self.before = before
        self.after = after

    def extra(self) -> dict[str, Any]:
        return {
            "before": {"width": self.before[0], "height": self.before[1]},
            "after": {"width": self.after[0], "height": self.after[1]},
        }


class CaptureError(SnapdiffError):
    summary = "Failed to capture screenshot"


class NavigationTimeoutError(CaptureError):
    summary = "Navigation timed out"


class ComparisonError(SnapdiffError):
    summary = "Failed to compare images"
