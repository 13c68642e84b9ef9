"""
Result repository: filtered/paginated listing, lookups and single-record delete.
All filtering, ordering and counting happens in SQL so totals cover the full dataset.
"""
import logging
import math
from dataclasses import dataclass, asdict
from typing import Optional, Mapping, Any, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, Query

from config import settings
from models.results import ExamResult
from services.exceptions import FilterValidationError, NotFoundError, StorageTransactionError

logger = logging.getLogger(__name__)


# ===========================
#        FILTERS
# ===========================

def optional_int(key: str, value) -> Optional[int]:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    if isinstance(value, bool):
        raise FilterValidationError(f"'{key}' must be an integer")
    try:
        as_float = float(value)
    except (TypeError, ValueError):
        raise FilterValidationError(f"'{key}' must be an integer, got {value!r}")
    if not as_float.is_integer():
        raise FilterValidationError(f"'{key}' must be an integer, got {value!r}")
    return int(as_float)


def optional_str(value) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass(frozen=True)
class ResultFilters:
    branchName: Optional[str] = None
    semester: Optional[int] = None
    academicYear: Optional[str] = None
    examid: Optional[int] = None
    uploadBatch: Optional[str] = None

    @classmethod
    def from_params(cls, params: Optional[Mapping[str, Any]] = None) -> "ResultFilters":
        """Build filters from raw query params; unknown keys and blank values are ignored."""
        params = params or {}
        return cls(
            branchName=optional_str(params.get("branchName")),
            semester=optional_int("semester", params.get("semester")),
            academicYear=optional_str(params.get("academicYear")),
            examid=optional_int("examid", params.get("examid")),
            uploadBatch=optional_str(params.get("uploadBatch")),
        )

    def active(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


FILTER_COLUMNS = {
    "branchName": ExamResult.branch_name,
    "semester": ExamResult.semester,
    "academicYear": ExamResult.academic_year,
    "examid": ExamResult.examid,
    "uploadBatch": ExamResult.upload_batch,
}


def apply_filters(query: Query, filters: ResultFilters) -> Query:
    for key, value in filters.active().items():
        query = query.filter(FILTER_COLUMNS[key] == value)
    return query


def ordered(query: Query) -> Query:
    # Stable ordering keeps pages consistent across repeated calls
    return query.order_by(
        ExamResult.declaration_date.desc(),
        ExamResult.st_id.asc(),
        ExamResult.id.asc(),
    )


# ===========================
#        SERIALIZATION
# ===========================

def result_to_dict(r: ExamResult) -> Dict[str, Any]:
    return {
        "id": r.id,
        "st_id": r.st_id,
        "name": r.name,
        "instcode": r.instcode,
        "instName": r.inst_name,
        "branchName": r.branch_name,
        "branchCode": r.branch_code,
        "courseName": r.course_name,
        "semester": r.semester,
        "academicYear": r.academic_year,
        "exam": r.exam,
        "examid": r.examid,
        "extype": r.extype,
        "declarationDate": r.declaration_date.isoformat() if r.declaration_date else None,
        "mapNumber": r.map_number,
        "unitNo": r.unit_no,
        "examNumber": r.exam_number,
        "trials": r.trials,
        "remark": r.remark,
        "subjects": list(r.subjects or []),
        "totalCredits": r.total_credits,
        "earnedCredits": r.earned_credits,
        "spi": r.spi,
        "cpi": r.cpi,
        "cgpa": r.cgpa,
        "result": r.result,
        "uploadBatch": r.upload_batch,
        "createdAt": r.created_at.isoformat() if r.created_at else None,
        "updatedAt": r.updated_at.isoformat() if r.updated_at else None,
    }


# ===========================
#        QUERIES
# ===========================

def validate_paging(page: int, limit: int) -> Tuple[int, int]:
    page = optional_int("page", page)
    limit = optional_int("limit", limit)
    if page is None:
        page = 1
    if limit is None:
        limit = settings.DEFAULT_PAGE_LIMIT
    if page < 1:
        raise FilterValidationError("'page' must be >= 1")
    if limit < 1 or limit > settings.MAX_PAGE_LIMIT:
        raise FilterValidationError(f"'limit' must be between 1 and {settings.MAX_PAGE_LIMIT}")
    return page, limit


def query_results(db: Session, filters: ResultFilters, page: int = 1, limit: Optional[int] = None):
    page, limit = validate_paging(page, limit)

    base = apply_filters(db.query(ExamResult), filters)
    total = base.count()
    rows = ordered(base).offset((page - 1) * limit).limit(limit).all()

    pagination = {
        "total": total,
        "page": page,
        "limit": limit,
        "pages": math.ceil(total / limit) if total else 0,
    }
    return rows, pagination


def get_result(db: Session, result_id: int) -> ExamResult:
    result = db.get(ExamResult, result_id)
    if result is None:
        raise NotFoundError(f"Result {result_id} not found")
    return result


def get_student_results(db: Session, st_id: str) -> List[ExamResult]:
    """Every result of a student across batches, oldest declaration first."""
    return db.query(ExamResult).filter(ExamResult.st_id == st_id).order_by(
        ExamResult.declaration_date.asc(), ExamResult.id.asc()
    ).all()


def summarize_student_history(results: List[ExamResult]) -> Dict[str, Any]:
    """Cross-semester summary for the grade history view."""
    if not results:
        return {"latestCpi": 0.0, "totalEarnedCredits": 0.0, "activeBacklogs": 0, "semesters": []}

    latest = max(results, key=lambda r: (r.declaration_date, r.id))

    # A subject stays a backlog until a later result clears it
    subject_state: Dict[str, bool] = {}
    for r in sorted(results, key=lambda r: (r.declaration_date, r.id)):
        for sub in r.subjects or []:
            subject_state[sub.get("code")] = bool(sub.get("isBacklog"))

    return {
        "latestCpi": round(latest.cpi or 0.0, 2),
        "totalEarnedCredits": sum(r.earned_credits or 0 for r in results),
        "activeBacklogs": sum(1 for flag in subject_state.values() if flag),
        "semesters": sorted({r.semester for r in results}),
    }


def delete_result(db: Session, result_id: int) -> int:
    result = get_result(db, result_id)
    batch_id = result.upload_batch
    try:
        db.delete(result)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Deleting result %s failed: %s", result_id, e)
        raise StorageTransactionError(f"Could not delete result {result_id}") from e
    logger.info("Deleted result %s (batch %s)", result_id, batch_id)
    return 1
