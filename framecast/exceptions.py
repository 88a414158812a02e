"""Custom exceptions for framecast.

Every error carries a machine-readable code from
``framecast.constants.error_codes`` so that callers (the CLI, the Celery task,
progress sockets) can decide whether to retry a partition or abort the render.
"""

from framecast.constants.error_codes import get_error_spec
from framecast.schemas.envelope import ErrorInfo, ErrorLocation, SuggestedAction


class FramecastError(Exception):
    """Base exception for all framecast errors."""

    code: str = "INTERNAL_ERROR"
    message: str = "An unexpected error occurred"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        location: ErrorLocation | None = None,
        suggested_fix: str | None = None,
    ):
        self.message = message or self.__class__.message
        if code:
            self.code = code
        self.location = location
        self.suggested_fix = suggested_fix
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return get_error_spec(self.code).get("retryable", False)

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo for reporting."""
        spec = get_error_spec(self.code)

        suggested_actions: list[SuggestedAction] = []
        if "suggested_action" in spec:
            suggested_actions.append(
                SuggestedAction(
                    action=spec["suggested_action"],
                    parameters=spec.get("parameters", {}),
                )
            )

        return ErrorInfo(
            code=self.code,
            message=self.message,
            location=self.location,
            retryable=spec.get("retryable", False),
            suggested_fix=self.suggested_fix or spec.get("suggested_fix"),
            suggested_actions=suggested_actions,
        )


# =============================================================================
# Configuration Errors (fail fast, before any frame work)
# =============================================================================


class ConfigurationError(FramecastError):
    """Invalid render configuration."""

    code = "INVALID_CONFIG"
    message = "Invalid render configuration"

    def __init__(self, message: str | None = None, *, field: str | None = None):
        location = ErrorLocation(field=field) if field else None
        super().__init__(message, location=location)


class FrameRangeError(ConfigurationError):
    """Requested frame lies outside the composition."""

    code = "FRAME_OUT_OF_RANGE"

    def __init__(self, frame: int, total_frames: int):
        self.frame = frame
        self.total_frames = total_frames
        super().__init__(
            f"Frame {frame} is outside [0, {total_frames})", field="frame"
        )
        self.location = ErrorLocation(field="frame", frame_index=frame)

    def __reduce__(self):
        return (self.__class__, (self.frame, self.total_frames))


class CompositionLoadError(FramecastError):
    """A composition reference could not be imported."""

    code = "COMPOSITION_NOT_FOUND"
    message = "Composition not found"

    def __init__(self, reference: str, reason: str | None = None):
        self.reference = reference
        self.reason = reason
        message = f"Cannot load composition '{reference}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.reference, self.reason))


# =============================================================================
# Render Errors
# =============================================================================


class PartitionRenderError(FramecastError):
    """Drawing or encoding failed inside one partition.

    Fatal to that partition only; the caller decides whether to retry it.
    """

    code = "PARTITION_FAILED"
    message = "Partition render failed"

    def __init__(self, partition_index: int, frame_index: int | None, reason: str):
        self.partition_index = partition_index
        self.frame_index = frame_index
        where = f"partition {partition_index}"
        if frame_index is not None:
            where = f"{where}, frame {frame_index}"
        super().__init__(
            f"Render failed at {where}: {reason}",
            location=ErrorLocation(partition_index=partition_index, frame_index=frame_index),
        )

    def __reduce__(self):
        # Keep the exception picklable across process pool boundaries
        reason = self.message.split(": ", 1)[-1]
        return (self.__class__, (self.partition_index, self.frame_index, reason))


class EncoderError(FramecastError):
    """The ffmpeg encoder process failed."""

    code = "ENCODER_FAILED"
    message = "Encoder failed"


class ReassemblyError(FramecastError):
    """Chunks could not be concatenated or muxed."""

    code = "REASSEMBLY_FAILED"
    message = "Chunk reassembly failed"


class MediaProbeError(FramecastError):
    """ffprobe / ffmpeg could not read a media file."""

    code = "MEDIA_PROBE_FAILED"
    message = "Media probe failed"


class RenderCancelledError(FramecastError):
    """The render job was cancelled by the caller."""

    code = "RENDER_CANCELLED"
    message = "Render cancelled"
