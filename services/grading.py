"""
Grade & performance calculator.
Pure functions only: letter grade -> grade point -> SPI / CPI, plus credit totals.
"""
import logging
from typing import Iterable, Dict, Any, Optional

logger = logging.getLogger(__name__)

GRADE_POINTS = {
    "AA": 10, "AB": 9, "BB": 8, "BC": 7, "CC": 6,
    "CD": 5, "DD": 4, "FF": 0, "II": 0,
}
BACKLOG_GRADES = frozenset({"FF", "II"})
VALID_GRADES = frozenset(GRADE_POINTS)

PASS = "PASS"
FAIL = "FAIL"


def grade_point(grade: str) -> int:
    """Grade point for a letter grade; unknown grades count as 0."""
    if not grade:
        return 0
    return GRADE_POINTS.get(str(grade).strip().upper(), 0)


def is_backlog(grade: str) -> bool:
    return str(grade or "").strip().upper() in BACKLOG_GRADES


def subject_is_backlog(subject: Dict[str, Any]) -> bool:
    # An explicit isBacklog from the import file wins over the grade
    flag = subject.get("isBacklog")
    if flag is None:
        return is_backlog(subject.get("grade"))
    return bool(flag)


def _credit_points(subjects: Iterable[Dict[str, Any]]):
    credits = 0.0
    points = 0.0
    for sub in subjects:
        c = float(sub.get("credits") or 0)
        credits += c
        points += c * grade_point(sub.get("grade"))
    return credits, points


def total_credits(subjects: Iterable[Dict[str, Any]]) -> float:
    return sum(float(s.get("credits") or 0) for s in subjects)


def earned_credits(subjects: Iterable[Dict[str, Any]]) -> float:
    return sum(float(s.get("credits") or 0) for s in subjects if not subject_is_backlog(s))


def result_status(subjects: Iterable[Dict[str, Any]]) -> str:
    return FAIL if any(subject_is_backlog(s) for s in subjects) else PASS


def compute_spi(subjects: Iterable[Dict[str, Any]]) -> float:
    """
    Credit-weighted grade point average for one exam.
    Backlog subjects stay in the denominator with 0 points.
    Zero total credits gives 0.0.
    """
    credits, points = _credit_points(subjects)
    if credits == 0:
        logger.debug("SPI requested for subjects with zero total credits, returning 0")
        return 0.0
    return round(points / credits, 2)


def compute_cpi(prior_cpi: float, prior_cumulative_credits: float, new_subjects: Iterable[Dict[str, Any]]) -> float:
    """
    Cumulative average across every exam to date.
    The prior CPI is weighted by the credits it already covers, so a weak semester can pull it down.
    """
    new_credits, new_points = _credit_points(new_subjects)
    prior_credits = float(prior_cumulative_credits or 0)
    cumulative = prior_credits + new_credits
    if cumulative == 0:
        return 0.0
    return round((float(prior_cpi or 0) * prior_credits + new_points) / cumulative, 2)


def summarize(
    subjects: Iterable[Dict[str, Any]],
    spi: Optional[float] = None,
    cpi: Optional[float] = None,
    prior_cpi: float = 0.0,
    prior_credits: float = 0.0,
) -> Dict[str, Any]:
    """All derived fields for a result; supplied spi/cpi are kept (re-rounded)."""
    subjects = list(subjects)
    return {
        "total_credits": total_credits(subjects),
        "earned_credits": earned_credits(subjects),
        "spi": round(spi, 2) if spi is not None else compute_spi(subjects),
        "cpi": round(cpi, 2) if cpi is not None else compute_cpi(prior_cpi, prior_credits, subjects),
        "result": result_status(subjects),
    }
