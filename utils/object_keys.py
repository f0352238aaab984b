# utils/object_keys.py
"""
Object key resolution for HLS assets in the storage bucket.

A song stores the folder that holds its HLS assets. Depending on when it was
written, that value is a bare slug ("my-song"), an object key
("my-song/master.m3u8") or a full storage URL
("https://x.supabase.co/storage/v1/object/public/music/my-song/master.m3u8").
normalize_bucket_folder() reduces all of them to a key inside the bucket;
resolve_object_key() then maps the public quality selector onto a key under
the same directory, refusing anything that could climb out of it.

Pure string logic, no I/O.
"""
import posixpath
from typing import Callable, List, Tuple
from urllib.parse import unquote, urlsplit

PLAYLIST_EXT = ".m3u8"
MASTER_PLAYLIST = "master" + PLAYLIST_EXT
STORAGE_OBJECT_MARKER = "/storage/v1/object/"
ACCESS_MARKERS = ("public/", "sign/", "authenticated/")


class InvalidObjectKey(ValueError):
    """The value cannot be turned into a key inside the stream's namespace."""


def is_playlist_key(key: str) -> bool:
    return key.lower().endswith(PLAYLIST_EXT)


# ---------- Strip rules (applied in order) ----------
def _trim(value: str, bucket_name: str) -> str:
    return value.strip()


def _drop_query(value: str, bucket_name: str) -> str:
    for sep in ("?", "#"):
        idx = value.find(sep)
        if idx != -1:
            value = value[:idx]
    return value


def _unify_separators(value: str, bucket_name: str) -> str:
    return value.replace("\\", "/")


def _url_path(value: str, bucket_name: str) -> str:
    parts = urlsplit(value)
    if parts.scheme and parts.netloc:
        return parts.path
    return value


def _storage_api_prefix(value: str, bucket_name: str) -> str:
    idx = value.lower().find(STORAGE_OBJECT_MARKER)
    if idx != -1:
        return value[idx + len(STORAGE_OBJECT_MARKER):]
    return value


def _leading_slash(value: str, bucket_name: str) -> str:
    return value.lstrip("/")


def _access_marker(value: str, bucket_name: str) -> str:
    for marker in ACCESS_MARKERS:
        if value.startswith(marker):
            return value[len(marker):]
    return value


def _bucket_prefix(value: str, bucket_name: str) -> str:
    prefix = bucket_name.strip().strip("/")
    if prefix and value.startswith(prefix + "/"):
        return value[len(prefix) + 1:]
    return value


StripRule = Callable[[str, str], str]

STRIP_RULES: List[Tuple[str, StripRule]] = [
    ("trim", _trim),
    ("drop_query", _drop_query),
    ("unify_separators", _unify_separators),
    ("url_path", _url_path),
    ("storage_api_prefix", _storage_api_prefix),
    ("leading_slash", _leading_slash),
    ("access_marker", _access_marker),
    ("bucket_prefix", _bucket_prefix),
]


def _apply_strip_rules(value: str, bucket_name: str = "") -> str:
    for _, rule in STRIP_RULES:
        value = rule(value, bucket_name)
    return value


def normalize_bucket_folder(value: str, bucket_name: str = "") -> str:
    """Run STRIP_RULES over a stored folder value and return a clean key."""
    key = _apply_strip_rules(value or "", bucket_name)
    if ".." in key or "\x00" in key:
        raise InvalidObjectKey("folder escapes the bucket namespace")
    key = key.strip("/")
    if not key:
        raise InvalidObjectKey("folder is empty")
    key = posixpath.normpath(key)
    if key in (".", "") or key.startswith("/"):
        raise InvalidObjectKey("folder is empty")
    return key


def master_object_key(bucket_folder: str, bucket_name: str = "") -> str:
    key = normalize_bucket_folder(bucket_folder, bucket_name)
    if is_playlist_key(key):
        return key
    return posixpath.join(key, MASTER_PLAYLIST)


def resolve_filename(raw: str) -> str:
    """
    Map a variant selector to its playlist name: "/128k" -> "128k.m3u8".
    Anything after the last dot of the file name is replaced, so
    "/variant.ts" -> "variant.m3u8". Empty selects the master playlist.
    """
    name = (raw or "").strip("/")
    if not name:
        return MASTER_PLAYLIST
    head, sep, tail = name.rpartition("/")
    idx = tail.rfind(".")
    if idx != -1:
        tail = tail[:idx]
    return f"{head}{sep}{tail}{PLAYLIST_EXT}"


def resolve_object_key(master_key: str, raw_quality: str) -> str:
    """
    Resolve a quality selector against the master playlist's directory.

    - "" or "/"                -> master_key
    - "128k", "128k.m3u8"      -> <dir>/128k.m3u8
    - "128k_segment_000.ts"    -> <dir>/128k_segment_000.ts (literal file)
    Raises InvalidObjectKey for traversal or anything resolving outside <dir>.
    """
    base_dir = posixpath.dirname(master_key)

    raw = unquote(raw_quality or "").replace("\\", "/")
    if "\x00" in raw:
        raise InvalidObjectKey("invalid selector")
    raw = raw.strip("/")
    if not raw:
        return master_key
    if ".." in raw:
        raise InvalidObjectKey("selector contains traversal")

    basename = raw.rsplit("/", 1)[-1]
    if is_playlist_key(basename) or "." not in basename:
        target = resolve_filename(raw)
    else:
        target = raw

    clean = posixpath.normpath(posixpath.join(base_dir, target))
    if clean == ".." or clean.startswith("../") or clean.startswith("/"):
        raise InvalidObjectKey("selector escapes the stream directory")
    if base_dir and not clean.startswith(base_dir + "/"):
        raise InvalidObjectKey("selector escapes the stream directory")
    return clean


def folder_from_bucket_path(bucket_path: str, bucket_name: str = "") -> str:
    """
    Folder holding a song's assets, resolved exactly as the stream route
    resolves it: "albums/my-song" stays "albums/my-song". "" when nothing is
    stored. Raises InvalidObjectKey for values that escape the bucket.
    """
    if not (bucket_path or "").strip():
        return ""
    return posixpath.dirname(master_object_key(bucket_path, bucket_name))
