from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator


class RenderJobRequest(BaseModel):
    composition: str | None = None  # "module:attribute"; the preview app uses its own composition
    output: str | None = None
    workers: int | None = Field(default=None, ge=0)  # 0 = one per CPU
    executor: Literal["auto", "process", "thread", "celery"] | None = None
    resume: bool = False
    # RenderConfig fields to replace (fps / duration change the frame grid, so they are not allowed)
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    audio_file: str | None = None

    @field_validator("composition")
    @classmethod
    def check_reference(cls, value: str | None) -> str | None:
        if value is not None and ":" not in value:
            raise ValueError("composition must look like 'module:attribute'")
        return value

    def config_overrides(self) -> dict[str, Any]:
        """Non-empty RenderConfig overrides carried by this request."""
        overrides = {
            "width": self.width,
            "height": self.height,
            "audio_file": self.audio_file,
            "output_file": self.output,
        }
        return {key: value for key, value in overrides.items() if value is not None}


class RenderJobResponse(BaseModel):
    job_id: str
    status: str
    percent: float = 0.0
    current_step: str | None = None
    frames_done: int = 0
    total_frames: int = 0
    elapsed_ms: int = 0
    error_message: str | None = None
    output_path: str | None = None


class PlaybackCommand(BaseModel):
    action: Literal["play", "pause", "seek"]
    time: float | None = None
