import re

_TEXT_CT_RE = re.compile(
    r"^(?:text/|application/(?:json|xml|x-www-form-urlencoded))(?:[;].*)?$",
    re.I,
)


def detect_charset(content_type: str | None) -> str | None:
    """
    Best-effort charset detection from Content-Type header.
    Returns codec name (e.g., 'utf-8') or None if not clearly text.
    """
    if not content_type:
        return None
    m = re.search(r"charset=([^\s;]+)", content_type, flags=re.I)
    if m:
        return m.group(1).strip('"').strip("'")
    if _TEXT_CT_RE.match(content_type):
        return "utf-8"
    return None


def is_json_content_type(content_type: str | None) -> bool:
    ctype = (content_type or "").lower()
    return "application/json" in ctype or ctype.split(";")[0].strip().endswith("+json")


def decode_text(raw: bytes, content_type: str | None) -> str:
    cs = detect_charset(content_type) or "utf-8"
    try:
        return raw.decode(cs, errors="replace")
    except LookupError:
        # unknown codec name in the header
        return raw.decode("utf-8", errors="replace")
