import re
from typing import Optional

UNKNOWN = "unknown"

_GIT_SHA = re.compile(r"^[0-9a-fA-F]{40}$")
_HASH_WITH_DOT = re.compile(r"^[0-9a-fA-F]{20,}\.")
_SHORT_HASH = re.compile(r"^[0-9a-fA-F]{7,}$")
_LEADING_NON_DIGITS = re.compile(r"^[^\d]*")
_RANGE_SEPARATOR = re.compile(r"[\s,|]")
_WILDCARDS = ("", "x", "X", "*")


def normalize_version(raw: Optional[str]) -> str:
    """
    Cleans a declared version into `major.minor.patch[extra]`.

    Ranges, prefixes (^, ~, >=, v) and wildcards are reduced to the first
    concrete version they mention. Git SHAs and other hashes become "unknown".
    Never raises.
    """
    if not raw or not isinstance(raw, str):
        return UNKNOWN

    version = raw.strip()
    if not version or version.lower() == UNKNOWN:
        return UNKNOWN

    if _GIT_SHA.match(version) or _HASH_WITH_DOT.match(version):
        return UNKNOWN
    if "." not in version and _SHORT_HASH.match(version):
        return UNKNOWN

    cleaned = _LEADING_NON_DIGITS.sub("", version)
    # "1.2.3 <2.0.0", "1.0, <2" and "1 || 2" keep their lower bound only
    cleaned = _RANGE_SEPARATOR.split(cleaned, maxsplit=1)[0]
    if not cleaned:
        return UNKNOWN

    core, extra = _split_extra(cleaned)

    segments = core.split(".")
    parts = []
    for i in range(3):
        segment = segments[i] if i < len(segments) else ""
        parts.append("0" if segment in _WILDCARDS else segment)

    if len(parts[0]) > 10:
        return UNKNOWN

    return f"{parts[0]}.{parts[1]}.{parts[2]}{extra}"


def _split_extra(cleaned: str):
    for idx, char in enumerate(cleaned):
        if char in "-+":
            return cleaned[:idx], cleaned[idx:]
    return cleaned, ""
