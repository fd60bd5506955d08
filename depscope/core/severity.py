import logging
from typing import Any, Dict, Iterable, Optional

from cvss import CVSS3, CVSS4
from cvss.exceptions import CVSSError

from depscope.core.model import SeverityScore

UNKNOWN = "unknown"


def compute_severity(entries: Optional[Iterable[Dict[str, Any]]]) -> SeverityScore:
    """
    Turns OSV `severity` entries ({type, score}) into base scores.

    Only CVSS_V3 and CVSS_V4 entries are considered. A field whose vector is missing
    or cannot be parsed is "unknown".
    """
    vectors = {}
    for entry in entries or []:
        kind = str(entry.get("type", "")).lower()
        score = entry.get("score")
        if kind in ("cvss_v3", "cvss_v4") and score and kind not in vectors:
            vectors[kind] = score

    return SeverityScore(
        cvss_v3=_score(CVSS3, "CVSS:3.1/", vectors.get("cvss_v3")),
        cvss_v4=_score(CVSS4, "CVSS:4.0/", vectors.get("cvss_v4")),
    )


def _score(calculator, prefix: str, vector: Optional[str]) -> str:
    if not vector:
        return UNKNOWN

    vector = vector.strip()
    if not vector.startswith("CVSS:"):
        vector = prefix + vector

    try:
        return str(calculator(vector).base_score)
    except (CVSSError, ValueError, KeyError) as e:
        logging.warning(f"Error parsing CVSS vector {vector}: {e}")
        return UNKNOWN
