"""
CSV export in the same layout the importer reads, so an export can be re-imported as-is.
Rows are pulled from the database in chunks and written out one at a time.
"""
import csv
import io
import logging
from typing import Iterator, List, Dict, Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from config import settings
from database import begin_isolated
from models.results import ExamResult
from services.exceptions import StorageTransactionError
from services.result_import import REQUIRED_FIELDS, OPTIONAL_FIELDS, SUBJECT_FIELDS, SUBJECT_FLAG, subject_column
from services.result_repository import ResultFilters, apply_filters, ordered, result_to_dict

logger = logging.getLogger(__name__)


def export_columns(max_subjects: int) -> List[str]:
    columns = list(REQUIRED_FIELDS) + [c for c in OPTIONAL_FIELDS if c not in ("spi", "cpi")]
    for n in range(1, max_subjects + 1):
        columns.extend(subject_column(n, f) for f in SUBJECT_FIELDS + [SUBJECT_FLAG])
    columns.extend(["spi", "cpi"])
    return columns


def _cell(value):
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return value


def export_row(result: ExamResult, max_subjects: int) -> List[Any]:
    data: Dict[str, Any] = result_to_dict(result)
    row = [_cell(data.get(c)) for c in REQUIRED_FIELDS]
    row.extend(_cell(data.get(c)) for c in OPTIONAL_FIELDS if c not in ("spi", "cpi"))

    subjects = data["subjects"]
    if len(subjects) > max_subjects:
        raise StorageTransactionError(
            f"Result {result.id} has {len(subjects)} subjects but the export header holds {max_subjects}"
        )
    for n in range(max_subjects):
        if n < len(subjects):
            sub = subjects[n]
            row.extend(_cell(sub.get(f)) for f in SUBJECT_FIELDS + [SUBJECT_FLAG])
        else:
            row.extend([""] * (len(SUBJECT_FIELDS) + 1))

    row.extend([_cell(data["spi"]), _cell(data["cpi"])])
    return row


def iter_export_rows(db: Session, filters: ResultFilters) -> Iterator[List[Any]]:
    """Header first, then one list per result in listing order.

    The header and the rows must describe the same set of results. Server
    databases read both inside one REPEATABLE READ transaction; on SQLite,
    which starts no transaction for a SELECT, the rows are bounded by the
    highest id seen when the header was sized. Results are never edited in
    place, so anything at or below that id still fits the header.
    """
    begin_isolated(db, settings.EXPORT_ISOLATION)
    max_subjects, last_id = apply_filters(
        db.query(func.max(ExamResult.subject_count), func.max(ExamResult.id)), filters
    ).one()
    max_subjects = max_subjects or 0
    yield export_columns(max_subjects)
    if last_id is None:
        return

    query = ordered(apply_filters(db.query(ExamResult), filters).filter(ExamResult.id <= last_id))
    for result in query.yield_per(settings.EXPORT_CHUNK_SIZE):
        yield export_row(result, max_subjects)


def stream_csv(session_factory, filters: ResultFilters) -> Iterator[str]:
    """CSV text chunks for a StreamingResponse; owns its session for the life of the stream."""
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    exported = 0

    with session_factory() as db:
        for row in iter_export_rows(db, filters):
            writer.writerow(row)
            exported += 1
            if exported % settings.EXPORT_CHUNK_SIZE == 0:
                yield buffer.getvalue()
                buffer.seek(0)
                buffer.truncate(0)

    if buffer.tell():
        yield buffer.getvalue()
    logger.info("Exported %d results with filters %s", max(exported - 1, 0), filters.active())
