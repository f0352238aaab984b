# config.py
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv
from fastapi import Request

from services.transcode import Variant

DEFAULT_SEGMENT_SECONDS = 6
DEFAULT_VARIANTS = (
    Variant(name="64k", bitrate_kbps=64),
    Variant(name="128k", bitrate_kbps=128),
    Variant(name="192k", bitrate_kbps=192),
)


class ConfigError(RuntimeError):
    """Process configuration is unusable; the service must not start."""


@dataclass(frozen=True)
class Settings:
    secret: bytes = field(repr=False)
    bucket_name: str = ""
    supabase_url: str = ""
    supabase_service_key: str = field(default="", repr=False)
    database_url: str = "sqlite:///./tunegate.db"
    segment_seconds: int = DEFAULT_SEGMENT_SECONDS
    variants: tuple[Variant, ...] = DEFAULT_VARIANTS
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    default_token_ttl_minutes: int = 10
    signed_url_ttl_seconds: int = 60
    stream_timeout_seconds: int = 10
    cors_origins: tuple[str, ...] = ("*",)


def _positive_int(value: str | None, default: int) -> int:
    try:
        n = int((value or "").strip())
    except ValueError:
        return default
    return n if n > 0 else default


def parse_segment_seconds(value: str | None) -> int:
    return _positive_int(value, DEFAULT_SEGMENT_SECONDS)


def parse_variant_config(value: str | None) -> tuple[Variant, ...]:
    """
    Parse HLS_AUDIO_VARIANTS, e.g. "64,128,192".
    Junk, non-positive and duplicate entries are skipped; falls back to the defaults.
    """
    variants: list[Variant] = []
    seen: set[int] = set()
    for part in (value or "").split(","):
        part = part.strip()
        if not part:
            continue
        try:
            kbps = int(part)
        except ValueError:
            continue
        if kbps <= 0 or kbps in seen:
            continue
        seen.add(kbps)
        variants.append(Variant(name=f"{kbps}k", bitrate_kbps=kbps))
    if not variants:
        return DEFAULT_VARIANTS
    return tuple(sorted(variants, key=lambda v: v.bitrate_kbps))


def load_settings() -> Settings:
    """Read the environment (and .env) once; raises ConfigError without a signing secret."""
    load_dotenv()

    secret = (os.getenv("SECRET") or "").strip()
    if not secret:
        raise ConfigError("SECRET is not set")

    origins = tuple(o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip())

    return Settings(
        secret=secret.encode("utf-8"),
        bucket_name=(os.getenv("SUPABASE_BUCKET") or "").strip(),
        supabase_url=(os.getenv("SUPABASE_URL") or "").strip().rstrip("/"),
        supabase_service_key=(os.getenv("SUPABASE_SERVICE_KEY") or "").strip(),
        database_url=os.getenv("DATABASE_URL", "sqlite:///./tunegate.db"),
        segment_seconds=parse_segment_seconds(os.getenv("HLS_SEGMENT_SECONDS")),
        variants=parse_variant_config(os.getenv("HLS_AUDIO_VARIANTS")),
        ffmpeg_bin=(os.getenv("FFMPEG_BIN") or "").strip() or "ffmpeg",
        ffprobe_bin=(os.getenv("FFPROBE_BIN") or "").strip() or "ffprobe",
        default_token_ttl_minutes=_positive_int(os.getenv("TOKEN_DEFAULT_TTL_MINUTES"), 10),
        signed_url_ttl_seconds=_positive_int(os.getenv("SIGNED_URL_TTL_SECONDS"), 60),
        stream_timeout_seconds=_positive_int(os.getenv("STREAM_UPSTREAM_TIMEOUT_SECONDS"), 10),
        cors_origins=origins or ("*",),
    )


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
