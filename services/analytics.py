"""
Branch-wise result analysis.
One SQL GROUP BY over (branch, semester); read-only, so aborting it on timeout is always safe.
"""
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from sqlalchemy import func, case, and_, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from config import settings
from models.results import ExamResult
from services.exceptions import AnalysisTimeoutError, FilterValidationError
from services.grading import PASS
from services.result_repository import optional_int, optional_str

logger = logging.getLogger(__name__)

# SQLite VM instructions between deadline checks
PROGRESS_STEPS = 100


@dataclass(frozen=True)
class ClassBands:
    """Lower CPI bounds (inclusive) for each class; each band ends where the one above starts."""
    distinction: float = 7.5
    first_class: float = 6.0
    second_class: float = 5.0

    def __post_init__(self):
        if not (self.distinction > self.first_class > self.second_class >= 0):
            raise ValueError(
                f"Class bands must be strictly decreasing, got "
                f"{self.distinction} / {self.first_class} / {self.second_class}"
            )

    @classmethod
    def from_settings(cls) -> "ClassBands":
        return cls(
            distinction=settings.DISTINCTION_MIN_CPI,
            first_class=settings.FIRST_CLASS_MIN_CPI,
            second_class=settings.SECOND_CLASS_MIN_CPI,
        )


@contextmanager
def statement_deadline(db: Session, timeout: Optional[float]):
    """Abort the statements run inside the block once `timeout` seconds have passed."""
    if not timeout:
        yield
        return

    conn = db.connection()
    dialect = conn.dialect.name

    if dialect == "postgresql":
        conn.execute(text(f"SET LOCAL statement_timeout = {max(1, int(timeout * 1000))}"))
        yield
    elif dialect == "sqlite":
        raw = conn.connection.dbapi_connection
        deadline = time.monotonic() + timeout
        raw.set_progress_handler(lambda: 1 if time.monotonic() > deadline else 0, PROGRESS_STEPS)
        try:
            yield
        finally:
            raw.set_progress_handler(None, PROGRESS_STEPS)
    else:
        logger.debug("No statement timeout support for dialect %s", dialect)
        yield


def _flag(condition):
    return func.sum(case((condition, 1), else_=0))


def analyze_branches(
    db: Session,
    academic_year: Optional[str] = None,
    examid=None,
    timeout: Optional[float] = None,
    bands: Optional[ClassBands] = None,
) -> List[Dict[str, Any]]:
    academic_year = optional_str(academic_year)
    examid = optional_int("examid", examid)
    if timeout is not None and timeout <= 0:
        raise FilterValidationError("'timeout' must be a positive number of seconds")
    bands = bands or ClassBands.from_settings()

    cpi = ExamResult.cpi
    query = db.query(
        ExamResult.branch_name,
        ExamResult.semester,
        func.count(ExamResult.id),
        _flag(ExamResult.result == PASS),
        _flag(cpi >= bands.distinction),
        _flag(and_(cpi >= bands.first_class, cpi < bands.distinction)),
        _flag(and_(cpi >= bands.second_class, cpi < bands.first_class)),
        func.avg(ExamResult.spi),
        func.avg(cpi),
    )
    if academic_year is not None:
        query = query.filter(ExamResult.academic_year == academic_year)
    if examid is not None:
        query = query.filter(ExamResult.examid == examid)
    query = query.group_by(ExamResult.branch_name, ExamResult.semester).order_by(
        ExamResult.branch_name.asc(), ExamResult.semester.asc()
    )

    started = time.monotonic()
    try:
        with statement_deadline(db, timeout):
            rows = query.all()
    except OperationalError as e:
        db.rollback()
        if timeout and time.monotonic() - started >= timeout:
            logger.warning("Branch analysis aborted after %.2fs (timeout %.2fs)", time.monotonic() - started, timeout)
            raise AnalysisTimeoutError(f"Branch analysis exceeded {timeout} seconds") from e
        raise

    analysis = []
    for branch, semester, total, passed, distinction, first, second, avg_spi, avg_cpi in rows:
        passed = int(passed or 0)
        analysis.append({
            "branchName": branch,
            "semester": semester,
            "totalStudents": total,
            "passCount": passed,
            "distinctionCount": int(distinction or 0),
            "firstClassCount": int(first or 0),
            "secondClassCount": int(second or 0),
            "passPercentage": round(passed / total * 100, 1) if total else 0.0,
            "avgSpi": round(float(avg_spi or 0), 2),
            "avgCpi": round(float(avg_cpi or 0), 2),
        })
    return analysis
