"""PDF Buddy exception hierarchy.

Every error raised by the capture pipeline carries a short human-readable
message for the user and the raw ``cause`` for diagnostics.
"""

from __future__ import annotations


class PDFBuddyError(Exception):
    """Base exception for all PDF Buddy errors.

    Attributes:
        message: Human-readable description suitable for display.
        cause: The underlying exception, if any.
    """

    stage = "unknown"

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        self.message = message
        self.cause = cause
        super().__init__(message)

    @property
    def cause_text(self) -> str:
        """Return the raw cause as ``Type: message`` (empty when absent)."""
        if self.cause is None:
            return ""
        return f"{type(self.cause).__name__}: {self.cause}"


class CaptureError(PDFBuddyError):
    """Viewport or tile capture failed."""

    stage = "capture"


class PreparationError(PDFBuddyError):
    """A page preparation step failed. Always absorbed by the caller."""

    stage = "preparation"


class PlanningError(PDFBuddyError):
    """Invalid or unsupported page layout. Absorbed by falling back to auto."""

    stage = "planning"


class WatermarkError(PDFBuddyError):
    """Watermark could not be applied."""

    stage = "watermark"


class EntitlementError(WatermarkError):
    """A premium-gated watermark feature was requested without entitlement.

    Attributes:
        feature: Name of the missing feature.
    """

    def __init__(self, feature: str) -> None:
        self.feature = feature
        super().__init__(f"'{feature}' is a premium feature and is not available on this license")


class AssemblyError(PDFBuddyError):
    """Page or document composition failed."""

    stage = "assembly"


class DeliveryError(PDFBuddyError):
    """Handing the finished PDF to the download collaborator failed."""

    stage = "delivery"


class TemplateError(PDFBuddyError):
    """Template CRUD failed (limit reached, unknown id, bad import)."""

    stage = "template"


class CaptureInProgressError(PDFBuddyError):
    """Raised when a capture is requested while another one is in flight."""

    stage = "orchestrator"

    def __init__(self, active_request_id: str) -> None:
        self.active_request_id = active_request_id
        super().__init__(f"A capture is already in progress ({active_request_id}). Try again when it finishes.")
