# utils/slugs.py
import re
from unidecode import unidecode

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def slugify(value: str) -> str:
    """
    Storage folder name for a song title: "Café del Mar" -> "cafe-del-mar".
    A title made only of punctuation falls back to its length so it still
    gets a folder; blank input gives "".
    """
    lower = (value or "").strip().lower()
    if not lower:
        return ""
    slug = _NON_ALNUM.sub("-", unidecode(lower).lower()).strip("-")
    return slug or str(len(value))
