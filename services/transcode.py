# services/transcode.py
import logging
import os
import tempfile
from typing import NamedTuple, Sequence

import ffmpeg
from mutagen import File as MutagenFile
from mutagen import MutagenError

logger = logging.getLogger(__name__)

PLAYLIST_CONTENT_TYPE = "application/vnd.apple.mpegurl"
SEGMENT_CONTENT_TYPE = "video/mp2t"


class TranscodeError(RuntimeError):
    pass


class Variant(NamedTuple):
    name: str
    bitrate_kbps: int


class ResultFile(NamedTuple):
    name: str
    content: bytes
    content_type: str


def content_type_for(filename: str) -> str:
    lower = filename.lower()
    if lower.endswith(".m3u8"):
        return PLAYLIST_CONTENT_TYPE
    if lower.endswith(".ts"):
        return SEGMENT_CONTENT_TYPE
    return "application/octet-stream"


def build_master_playlist(variants: Sequence[Variant]) -> str:
    lines = ["#EXTM3U", "#EXT-X-VERSION:3"]
    for v in variants:
        lines.append(f'#EXT-X-STREAM-INF:BANDWIDTH={v.bitrate_kbps * 1024},CODECS="mp4a.40.2"')
        lines.append(f"{v.name}.m3u8")
    return "\n".join(lines) + "\n"


def _transcode_variant(source_path: str, out_dir: str, variant: Variant, segment_seconds: int, ffmpeg_bin: str):
    segment_pattern = os.path.join(out_dir, f"{variant.name}_segment_%03d.ts")
    playlist = os.path.join(out_dir, f"{variant.name}.m3u8")
    try:
        (
            ffmpeg
            .input(source_path)
            .output(
                playlist,
                vn=None,
                acodec="aac",
                audio_bitrate=f"{variant.bitrate_kbps}k",
                ac=2,
                format="hls",
                hls_time=segment_seconds,
                hls_playlist_type="vod",
                hls_segment_filename=segment_pattern,
            )
            .overwrite_output()
            .run(cmd=ffmpeg_bin, capture_stdout=True, capture_stderr=True)
        )
    except ffmpeg.Error as e:
        stderr = (e.stderr or b"").decode("utf-8", errors="replace")[-500:]
        raise TranscodeError(f"ffmpeg failed for variant {variant.name}: {stderr}") from e


def _collect_files(root: str) -> list[ResultFile]:
    out: list[ResultFile] = []
    for name in sorted(os.listdir(root)):
        full_path = os.path.join(root, name)
        if os.path.isdir(full_path):
            out.extend(_collect_files(full_path))
            continue
        with open(full_path, "rb") as f:
            out.append(ResultFile(name=name, content=f.read(), content_type=content_type_for(name)))
    return out


def generate_hls(
    source_path: str,
    variants: Sequence[Variant],
    segment_seconds: int = 6,
    ffmpeg_bin: str = "ffmpeg",
) -> list[ResultFile]:
    """
    Transcode an audio file into one HLS rendition per variant plus a
    master.m3u8 listing them. Returns the generated files, ready to upload.
    """
    if not source_path:
        raise TranscodeError("missing source path")
    if not os.path.exists(source_path):
        raise TranscodeError("source not accessible")
    if segment_seconds <= 0:
        segment_seconds = 6
    variants = list(variants) or [Variant(name="128k", bitrate_kbps=128)]

    with tempfile.TemporaryDirectory(prefix="tunegate-hls-") as out_dir:
        for v in variants:
            if not v.name:
                raise TranscodeError("variant name required")
            if v.bitrate_kbps <= 0:
                raise TranscodeError(f"invalid bitrate for variant {v.name}")
            logger.info("Transcoding variant %s (%dk)", v.name, v.bitrate_kbps)
            _transcode_variant(source_path, out_dir, v, segment_seconds, ffmpeg_bin)

        with open(os.path.join(out_dir, "master.m3u8"), "w", encoding="utf-8") as f:
            f.write(build_master_playlist(variants))

        return _collect_files(out_dir)


def probe_duration(source_path: str, ffprobe_bin: str = "ffprobe") -> int:
    """Duration in whole seconds. Tag reading first, ffprobe when mutagen can't tell."""
    if not source_path or not os.path.exists(source_path):
        raise TranscodeError("source not accessible")

    try:
        audio = MutagenFile(source_path)
    except MutagenError as e:
        logger.info("mutagen could not read %s: %s", os.path.basename(source_path), e)
        audio = None

    length = getattr(getattr(audio, "info", None), "length", None)
    if length:
        return int(round(length))

    try:
        info = ffmpeg.probe(source_path, cmd=ffprobe_bin)
        return int(round(float(info["format"]["duration"])))
    except ffmpeg.Error as e:
        raise TranscodeError("ffprobe failed") from e
    except (KeyError, TypeError, ValueError) as e:
        raise TranscodeError("ffprobe returned no duration") from e
