"""
Error taxonomy for ring detection.

Geometry and configuration errors fail fast. Resource gaps while sampling are
waited on and only surface (as a returned ``Failure``) when a tile can not be
obtained at all.
"""


class RingDetectError(Exception):
    """Base class for all ring detection errors."""

    kind = "error"


class ConfigurationError(RingDetectError):
    """Fragment program failed to compile or link."""

    kind = "configuration"


class ResourceUnavailable(RingDetectError):
    """A tile layer could not be fetched (network failure, 404, timeout)."""

    kind = "resource_unavailable"


class CaptureAreaTooLarge(RingDetectError):
    """Requested sampling area exceeds the canvas limits even after subdivision."""

    kind = "capture_area_too_large"


class DegenerateInput(RingDetectError, ValueError):
    """Zero-length segment, non-positive band height or out-of-range parameter."""

    kind = "degenerate_input"


class SessionCancelled(RingDetectError):
    """A newer detection session superseded this one."""

    kind = "session_cancelled"


ERRORS_BY_KIND = {
    cls.kind: cls
    for cls in (
        ConfigurationError,
        ResourceUnavailable,
        CaptureAreaTooLarge,
        DegenerateInput,
        SessionCancelled,
    )
}
