import re
from datetime import date
from typing import Optional


_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")

JOB_NAME_MAX = 30
REPORT_TYPE_MAX = 20


def sanitize(value: Optional[str], limit: int) -> str:
    return _NON_ALNUM.sub("", value or "")[:limit]


def initials_from_names(first: Optional[str], last: Optional[str]) -> Optional[str]:
    first = (first or "").strip()
    last = (last or "").strip()
    if first and last:
        return (first[0] + last[0]).upper()
    return None


def initials_from_author(author: Optional[str]) -> Optional[str]:
    parts = (author or "").split()
    if not parts:
        return None
    if len(parts) >= 2:
        return (parts[0][0] + parts[-1][0]).upper()
    word = parts[0]
    return (word[0] + (word[1] if len(word) > 1 else "X")).upper()


def inspector_initials(
    inspector_first: Optional[str],
    inspector_last: Optional[str],
    author: Optional[str],
) -> str:
    return (
        initials_from_names(inspector_first, inspector_last)
        or initials_from_author(author)
        or "XX"
    )


def build_report_filename(
    jobname: Optional[str],
    project_name: Optional[str],
    inspection_type: Optional[str],
    inspector_first: Optional[str] = None,
    inspector_last: Optional[str] = None,
    author: Optional[str] = None,
    today: Optional[date] = None,
) -> str:
    """``YYYY.MM.DD_<job>_<type>_<initials>.pdf``

    Deterministic for identical inputs on the same day. Sanitising strips every
    non-alphanumeric character, so "Site A" becomes "SiteA".
    """
    today = today or date.today()
    job = sanitize(jobname or project_name or "Unknown", JOB_NAME_MAX) or "Unknown"
    kind = sanitize(inspection_type or "General", REPORT_TYPE_MAX) or "General"
    initials = inspector_initials(inspector_first, inspector_last, author)
    return f"{today.strftime('%Y.%m.%d')}_{job}_{kind}_{initials}.pdf"
