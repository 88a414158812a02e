"""Error codes dictionary for render failures.

This is the single source of truth for all error codes, their retryability,
and suggested recovery actions. Used by ``FramecastError.to_error_info`` to
generate machine-readable error reports for CLI output and progress sockets.
"""

from typing import Any, TypedDict


class ErrorCodeSpec(TypedDict, total=False):
    """Specification for an error code."""

    retryable: bool
    suggested_action: str
    suggested_fix: str
    parameters: dict[str, Any]


# Error codes dictionary - single source of truth
ERROR_CODES: dict[str, ErrorCodeSpec] = {
    # ==========================================================================
    # Configuration errors (not retryable, fix input)
    # ==========================================================================
    "INVALID_CONFIG": {
        "retryable": False,
        "suggested_fix": "Check width, height, fps and duration_seconds of the composition",
    },
    "FRAME_OUT_OF_RANGE": {
        "retryable": False,
    },
    "COMPOSITION_NOT_FOUND": {
        "retryable": False,
        "suggested_fix": "Use an importable 'package.module:attribute' reference",
    },
    # ==========================================================================
    # Render errors (retry the failed partition)
    # ==========================================================================
    "PARTITION_FAILED": {
        "retryable": True,
        "suggested_action": "retry_partition",
        "suggested_fix": "Re-run the render with resume enabled to reuse finished chunks",
    },
    "ENCODER_FAILED": {
        "retryable": True,
        "suggested_action": "retry_partition",
    },
    "REASSEMBLY_FAILED": {
        "retryable": True,
        "suggested_action": "retry_reassembly",
    },
    # ==========================================================================
    # Media errors
    # ==========================================================================
    "MEDIA_PROBE_FAILED": {
        "retryable": False,
        "suggested_fix": "Verify the file exists and ffprobe is installed",
    },
    "RENDER_CANCELLED": {
        "retryable": True,
    },
    "INTERNAL_ERROR": {
        "retryable": False,
    },
}


def get_error_spec(code: str) -> ErrorCodeSpec:
    """Get error specification by code.

    Args:
        code: The error code

    Returns:
        ErrorCodeSpec with retryable flag and suggested actions
    """
    return ERROR_CODES.get(code, {"retryable": False})


def is_retryable(code: str) -> bool:
    """Check if an error code is retryable."""
    spec = get_error_spec(code)
    return spec.get("retryable", False)
