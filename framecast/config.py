from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FRAMECAST_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Application
    app_name: str = "framecast"
    app_version: str = "0.1.0"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Render defaults (used when a composition does not set them)
    render_width: int = 1920
    render_height: int = 1080
    render_fps: int = 30

    # Encoder
    render_video_codec: str = "libx264"
    render_pixel_format: str = "yuv420p"
    render_preset: str = "medium"
    render_crf: int = 23
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"

    # Parallel rendering
    # 0 = one worker per CPU
    render_workers: int = 0
    render_executor: Literal["auto", "process", "thread", "celery"] = "auto"
    # Seconds to wait for a Celery partition result before giving up
    render_celery_timeout_s: int = 3600

    # Working directories
    render_work_dir: str = ".framecast-tmp"
    video_cache_dir: str = ".framecast-cache"

    # Audio analysis
    audio_sample_rate: int = 44100

    # Interactive preview
    preview_fft_size: int = 256
    preview_refresh_hz: int = 60
    preview_host: str = "127.0.0.1"
    preview_port: int = 8765
    preview_jpeg_quality: int = 80

    # Celery broker/backend for distributed partition rendering
    redis_url: str = "redis://localhost:6379/0"


@lru_cache
def get_settings() -> Settings:
    return Settings()
