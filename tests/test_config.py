import pytest

import config
from config import (
    DEFAULT_VARIANTS,
    ConfigError,
    Settings,
    load_settings,
    parse_segment_seconds,
    parse_variant_config,
)
from main import create_app
from services.transcode import Variant

ENV_VARS = [
    "SECRET",
    "SUPABASE_BUCKET",
    "SUPABASE_URL",
    "SUPABASE_SERVICE_KEY",
    "DATABASE_URL",
    "HLS_SEGMENT_SECONDS",
    "HLS_AUDIO_VARIANTS",
    "FFMPEG_BIN",
    "FFPROBE_BIN",
    "TOKEN_DEFAULT_TTL_MINUTES",
    "SIGNED_URL_TTL_SECONDS",
    "CORS_ORIGINS",
]


@pytest.fixture()
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config, "load_dotenv", lambda *a, **k: False)
    return monkeypatch


@pytest.mark.parametrize(
    "value, expected",
    [
        ("64,128", (Variant("64k", 64), Variant("128k", 128))),
        ("192, 64 ,128", (Variant("64k", 64), Variant("128k", 128), Variant("192k", 192))),
        ("128,abc,,0,-5,128", (Variant("128k", 128),)),
        ("", DEFAULT_VARIANTS),
        (None, DEFAULT_VARIANTS),
        ("junk", DEFAULT_VARIANTS),
    ],
)
def test_parse_variant_config(value, expected):
    assert parse_variant_config(value) == expected


@pytest.mark.parametrize("value, expected", [("4", 4), (" 10 ", 10), ("0", 6), ("-1", 6), ("x", 6), (None, 6)])
def test_parse_segment_seconds(value, expected):
    assert parse_segment_seconds(value) == expected


def test_load_settings_reads_env(clean_env):
    clean_env.setenv("SECRET", " s3cret ")
    clean_env.setenv("SUPABASE_BUCKET", "music")
    clean_env.setenv("SUPABASE_URL", "https://x.supabase.co/")
    clean_env.setenv("SUPABASE_SERVICE_KEY", "key")
    clean_env.setenv("HLS_SEGMENT_SECONDS", "4")
    clean_env.setenv("HLS_AUDIO_VARIANTS", "96")
    clean_env.setenv("SIGNED_URL_TTL_SECONDS", "30")
    clean_env.setenv("CORS_ORIGINS", "https://a.example, https://b.example")

    s = load_settings()

    assert s.secret == b"s3cret"
    assert s.bucket_name == "music"
    assert s.supabase_url == "https://x.supabase.co"
    assert s.segment_seconds == 4
    assert s.variants == (Variant("96k", 96),)
    assert s.signed_url_ttl_seconds == 30
    assert s.default_token_ttl_minutes == 10
    assert s.ffmpeg_bin == "ffmpeg"
    assert s.cors_origins == ("https://a.example", "https://b.example")


def test_load_settings_requires_secret(clean_env):
    with pytest.raises(ConfigError):
        load_settings()
    clean_env.setenv("SECRET", "   ")
    with pytest.raises(ConfigError):
        load_settings()


def test_settings_repr_hides_secrets():
    s = Settings(secret=b"s3cret", supabase_service_key="service-key")
    assert "s3cret" not in repr(s)
    assert "service-key" not in repr(s)


def test_create_app_refuses_empty_secret(storage):
    with pytest.raises(ConfigError):
        create_app(settings=Settings(secret=b"", database_url="sqlite://"), storage=storage)


def test_create_app_refuses_missing_bucket_config():
    with pytest.raises(ConfigError):
        create_app(settings=Settings(secret=b"s", database_url="sqlite://"))
