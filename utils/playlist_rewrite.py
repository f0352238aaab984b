# utils/playlist_rewrite.py
"""
HLS playlist rewriting.

Every line that references a playable resource (variant playlist or segment)
gets the caller's auth query appended so that follow-up requests made by the
player stay authorized. Directives, comments and blank lines are emitted
byte-for-byte; so are line endings and whitespace around a reference.
"""
import logging
from dataclasses import dataclass, replace
from typing import List

logger = logging.getLogger(__name__)

BLANK = "blank"
DIRECTIVE = "directive"
URI = "uri"

_ABSOLUTE_SCHEMES = ("http://", "https://", "data:")
_BOM = "\ufeff"


@dataclass(frozen=True)
class ParsedLine:
    leading: str
    significant: str
    trailing: str
    terminator: str  # "", "\n" or "\r\n"

    @property
    def kind(self) -> str:
        if not self.significant:
            return BLANK
        if self.significant.startswith("#"):
            return DIRECTIVE
        return URI

    def render(self) -> str:
        return f"{self.leading}{self.significant}{self.trailing}{self.terminator}"


def parse_line(content: str, terminator: str = "") -> ParsedLine:
    significant = content.strip()
    if not significant:
        return ParsedLine(leading=content, significant="", trailing="", terminator=terminator)
    start = len(content) - len(content.lstrip())
    end = len(content.rstrip())
    return ParsedLine(
        leading=content[:start],
        significant=significant,
        trailing=content[end:],
        terminator=terminator,
    )


def tokenize(text: str) -> List[ParsedLine]:
    parts = text.split("\n")
    lines: List[ParsedLine] = []
    for i, content in enumerate(parts):
        last = i == len(parts) - 1
        if last:
            # text ending with "\n" leaves an empty tail that is not a line
            if content:
                lines.append(parse_line(content, ""))
            break
        if content.endswith("\r"):
            lines.append(parse_line(content[:-1], "\r\n"))
        else:
            lines.append(parse_line(content, "\n"))
    return lines


def serialize(lines: List[ParsedLine]) -> str:
    return "".join(line.render() for line in lines)


def inject_prefix(reference: str, prefix: str) -> str:
    """
    Prepend prefix to a bare same-directory playlist name ("128k.m3u8").
    Absolute paths, full URLs, protocol-relative refs, refs that already carry
    a directory and non-playlist files (segments) are left alone.
    """
    if not prefix:
        return reference
    if not prefix.endswith("/"):
        prefix += "/"
    path = reference.split("?", 1)[0]
    if path.startswith("/"):
        return reference
    if path.lower().startswith(_ABSOLUTE_SCHEMES):
        return reference
    if reference.startswith(prefix) or "/" in path:
        return reference
    if not path.lower().endswith(".m3u8"):
        return reference
    return prefix + reference


def merge_query(reference: str, query: str) -> str:
    query = query.lstrip("?&")
    if not query:
        return reference
    if "?" in reference:
        if reference.endswith(("?", "&")):
            return reference + query
        return f"{reference}&{query}"
    return f"{reference}?{query}"


def rewrite_line(line: ParsedLine, query: str, prefix: str = "") -> ParsedLine:
    if line.kind != URI:
        return line
    reference = merge_query(inject_prefix(line.significant, prefix), query)
    return replace(line, significant=reference)


def rewrite_text(text: str, query: str, prefix: str = "") -> str:
    bom = ""
    if text.startswith(_BOM):
        bom, text = _BOM, text[1:]
    lines = [rewrite_line(line, query, prefix) for line in tokenize(text)]
    return bom + serialize(lines)


def rewrite_playlist(data: bytes, query: str, prefix: str = "") -> bytes:
    """
    Rewrite raw playlist bytes. Input that cannot be decoded is returned
    untouched rather than risk serving a corrupted playlist.
    """
    if not query and not prefix:
        return data
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        logger.warning("Playlist is not valid UTF-8; serving it unmodified")
        return data
    return rewrite_text(text, query, prefix).encode("utf-8")
