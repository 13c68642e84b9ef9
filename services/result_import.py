"""
Result Bulk Import
Reads a CSV / Excel sheet of exam results (one row per student per exam,
subjects spread over repeated sub{n}_* columns), validates every row on its
own, fills in missing SPI/CPI and stores the valid rows as one upload batch.
"""

import io
import logging
import math
import re
import uuid
from collections import defaultdict
from datetime import datetime, date, timezone
from typing import List, Dict, Any, Optional

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from models.results import ExamResult
from services import grading
from services.exceptions import RowValidationError, ImportFileError, StorageTransactionError

logger = logging.getLogger(__name__)

# ==========================================
#   FILE LAYOUT
# ==========================================

REQUIRED_FIELDS = [
    "st_id", "name", "branchName", "semester", "academicYear",
    "exam", "examid", "declarationDate",
]
OPTIONAL_FIELDS = [
    "instcode", "instName", "spi", "cpi",
    "extype", "courseName", "branchCode",
    "mapNumber", "unitNo", "examNumber", "trials", "remark",
]
SUBJECT_FIELDS = ["code", "name", "credits", "grade"]
SUBJECT_FLAG = "isBacklog"

SUBJECT_COLUMN = re.compile(r"^sub(\d+)_(code|name|credits|grade|isbacklog)$")

SPI_TOLERANCE = 0.01
MAX_GRADE_POINT = max(grading.GRADE_POINTS.values())

# Model attribute for each plain text / integer column
TEXT_COLUMNS = {
    "instcode": "instcode",
    "instName": "inst_name",
    "extype": "extype",
    "courseName": "course_name",
    "branchCode": "branch_code",
    "remark": "remark",
}
INT_COLUMNS = {
    "mapNumber": "map_number",
    "unitNo": "unit_no",
    "examNumber": "exam_number",
    "trials": "trials",
}

TRUE_VALUES = {"true", "1", "yes", "y"}
FALSE_VALUES = {"false", "0", "no", "n"}


def subject_column(index, field: str) -> str:
    return f"sub{index}_{field}"


def new_batch_id() -> str:
    """Time-ordered, globally unique batch tag: 20250114093000-<uuid hex>."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"{stamp}-{uuid.uuid4().hex}"


# ==========================================
#   VALUE HELPERS
# ==========================================

def safe_str(value) -> Optional[str]:
    """Safely convert value to string, handling NaN and None"""
    if value is None or pd.isna(value):
        return None
    return str(value).strip() if str(value).strip() else None


def parse_date(value) -> Optional[date]:
    """Parse date from various formats"""
    if value is None or pd.isna(value):
        return None

    if isinstance(value, pd.Timestamp):
        return value.date()

    if isinstance(value, datetime):
        return value.date()

    if isinstance(value, date):
        return value

    date_formats = [
        "%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%Y/%m/%d",
        "%d-%b-%Y", "%d %b %Y", "%Y-%m-%d %H:%M:%S", "%Y-%m-%dT%H:%M:%S",
    ]

    value_str = str(value).strip()
    for fmt in date_formats:
        try:
            return datetime.strptime(value_str, fmt).date()
        except ValueError:
            continue
    return None


def parse_number(value, label: str, row_num: int) -> Optional[float]:
    text = safe_str(value)
    if text is None:
        return None
    try:
        number = float(text)
    except ValueError:
        raise RowValidationError(row_num, f"'{label}' is not a number: {text!r}")
    if not math.isfinite(number):
        raise RowValidationError(row_num, f"'{label}' is not a finite number: {text!r}")
    return number


def parse_int(value, label: str, row_num: int) -> Optional[int]:
    number = parse_number(value, label, row_num)
    if number is None:
        return None
    if not float(number).is_integer():
        raise RowValidationError(row_num, f"'{label}' must be a whole number: {safe_str(value)!r}")
    return int(number)


def parse_flag(value, label: str, row_num: int) -> Optional[bool]:
    text = safe_str(value)
    if text is None:
        return None
    lowered = text.lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    raise RowValidationError(row_num, f"'{label}' must be true/false: {text!r}")


# ==========================================
#   FILE READING
# ==========================================

def read_table(filename: str, contents: bytes) -> pd.DataFrame:
    """Load the uploaded sheet as strings, with lower-cased, stripped headers."""
    name = (filename or "").lower()
    try:
        if name.endswith(".csv"):
            df = pd.read_csv(io.BytesIO(contents), dtype=str, keep_default_na=False, na_values=[""])
        elif name.endswith((".xlsx", ".xls")):
            # openpyxl = .xlsx (new format), xlrd = .xls (old format)
            engine = "openpyxl" if name.endswith(".xlsx") else None
            df = pd.read_excel(io.BytesIO(contents), engine=engine, dtype=str)
        else:
            raise ImportFileError("Invalid file format. Please upload a .csv, .xlsx or .xls file")
    except ImportFileError:
        raise
    except Exception as e:
        raise ImportFileError(f"Error reading file: {e}") from e

    df.columns = df.columns.astype(str).str.strip().str.lower()
    return df


def subject_indexes(columns) -> List[int]:
    indexes = set()
    for col in columns:
        match = SUBJECT_COLUMN.match(col)
        if match:
            indexes.add(int(match.group(1)))
    return sorted(indexes)


# ==========================================
#   ROW PARSING
# ==========================================

def parse_subjects(row, row_num: int, indexes: List[int], warnings: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    subjects = []
    for n in indexes:
        values = {f: safe_str(row.get(subject_column(n, f.lower()))) for f in SUBJECT_FIELDS}
        flag_raw = row.get(subject_column(n, SUBJECT_FLAG.lower()))

        if all(v is None for v in values.values()) and safe_str(flag_raw) is None:
            continue

        missing = [f for f in SUBJECT_FIELDS if values[f] is None]
        if missing:
            raise RowValidationError(
                row_num, f"Subject {n} is incomplete, missing {', '.join(missing)}"
            )

        credits = parse_number(values["credits"], subject_column(n, "credits"), row_num)
        if credits < 0:
            raise RowValidationError(row_num, f"Subject {n} has negative credits ({credits})")

        grade = values["grade"].upper()
        if grade not in grading.VALID_GRADES:
            raise RowValidationError(row_num, f"Unknown grade '{values['grade']}' for subject {n}")

        backlog = grading.is_backlog(grade)
        override = parse_flag(flag_raw, subject_column(n, SUBJECT_FLAG), row_num)
        if override is not None and override != backlog:
            warnings.append({
                "row": row_num,
                "warning": f"Subject {values['code']}: isBacklog={override} overrides grade {grade}",
            })
            backlog = override

        subjects.append({
            "code": values["code"],
            "name": values["name"],
            "credits": credits,
            "grade": grade,
            "isBacklog": backlog,
        })

    if not subjects:
        raise RowValidationError(row_num, "Row has no subjects")
    return subjects


def parse_row(row, row_num: int, columns, indexes: List[int], warnings: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Validate one sheet row; raises RowValidationError on the first problem found."""
    problems = []
    for field in REQUIRED_FIELDS:
        if field.lower() not in columns:
            problems.append(f"Missing column '{field}'")
        elif safe_str(row.get(field.lower())) is None:
            problems.append(f"Missing required field '{field}'")
    if problems:
        raise RowValidationError(row_num, "; ".join(problems))

    declaration_date = parse_date(row.get("declarationdate"))
    if declaration_date is None:
        raise RowValidationError(
            row_num, f"Unrecognised declarationDate {safe_str(row.get('declarationdate'))!r}"
        )

    parsed = {
        "st_id": safe_str(row.get("st_id")),
        "name": safe_str(row.get("name")),
        "branch_name": safe_str(row.get("branchname")),
        "semester": parse_int(row.get("semester"), "semester", row_num),
        "academic_year": safe_str(row.get("academicyear")),
        "exam": safe_str(row.get("exam")),
        "examid": parse_int(row.get("examid"), "examid", row_num),
        "declaration_date": declaration_date,
    }
    for field, attr in TEXT_COLUMNS.items():
        parsed[attr] = safe_str(row.get(field.lower()))
    for field, attr in INT_COLUMNS.items():
        parsed[attr] = parse_int(row.get(field.lower()), field, row_num)

    parsed["subjects"] = parse_subjects(row, row_num, indexes, warnings)
    for field in ("spi", "cpi"):
        value = parse_number(row.get(field), field, row_num)
        if value is not None and not 0 <= value <= MAX_GRADE_POINT:
            raise RowValidationError(row_num, f"'{field}' must be between 0 and {MAX_GRADE_POINT}, got {value}")
        parsed[f"supplied_{field}"] = value
    return parsed


# ==========================================
#   DERIVED FIELDS
# ==========================================

def load_prior_history(db: Session, st_ids) -> Dict[str, List[Dict[str, Any]]]:
    """Stored (exam, date, cpi, credits) per student, used when a row has no CPI."""
    history = defaultdict(list)
    if not st_ids:
        return history
    ids = list(st_ids)
    for start in range(0, len(ids), settings.IMPORT_CHUNK_SIZE):
        chunk = ids[start:start + settings.IMPORT_CHUNK_SIZE]
        rows = db.query(
            ExamResult.st_id, ExamResult.declaration_date, ExamResult.id,
            ExamResult.examid, ExamResult.semester,
            ExamResult.cpi, ExamResult.total_credits,
        ).filter(ExamResult.st_id.in_(chunk)).all()
        for st_id, decl, rid, examid, semester, cpi, credits in rows:
            history[st_id].append({
                "exam": (examid, semester),
                "date": decl,
                "order": (0, rid),
                "cpi": cpi or 0.0,
                "credits": credits or 0.0,
            })
    return history


def prior_standing(history: List[Dict[str, Any]], before: date):
    # A re-imported or re-attempted exam counts once; its latest record wins
    per_exam = {}
    for h in history:
        if h["date"] >= before:
            continue
        seen = per_exam.get(h["exam"])
        if seen is None or (h["date"], h["order"]) > (seen["date"], seen["order"]):
            per_exam[h["exam"]] = h
    if not per_exam:
        return None, 0.0, 0.0
    priors = list(per_exam.values())
    latest = max(priors, key=lambda h: (h["date"], h["order"]))
    return len(priors), latest["cpi"], sum(h["credits"] for h in priors)


def compute_derived(db: Session, parsed_rows: List[Dict[str, Any]], warnings: List[Dict[str, Any]]):
    """Fill SPI/CPI/credits/result. Rows are visited in declaration order so
    an earlier exam in the same file counts towards a later row's CPI."""
    needs_history = {p["st_id"] for p in parsed_rows if p["supplied_cpi"] is None}
    history = load_prior_history(db, needs_history)

    for p in sorted(parsed_rows, key=lambda p: (p["declaration_date"], p["row"])):
        subjects = p["subjects"]
        computed_spi = grading.compute_spi(subjects)

        if p["supplied_spi"] is not None and abs(p["supplied_spi"] - computed_spi) > SPI_TOLERANCE:
            warnings.append({
                "row": p["row"],
                "warning": f"Supplied SPI {p['supplied_spi']} differs from computed SPI {computed_spi}",
            })

        prior_cpi, prior_credits = 0.0, 0.0
        if p["supplied_cpi"] is None:
            count, prior_cpi, prior_credits = prior_standing(history[p["st_id"]], p["declaration_date"])
            warnings.append({
                "row": p["row"],
                "warning": f"CPI not supplied; computed from {count or 0} earlier result(s)",
            })

        derived = grading.summarize(
            subjects,
            spi=p["supplied_spi"],
            cpi=p["supplied_cpi"],
            prior_cpi=prior_cpi,
            prior_credits=prior_credits,
        )
        p.update(derived)

        history[p["st_id"]].append({
            "exam": (p["examid"], p["semester"]),
            "date": p["declaration_date"],
            "order": (1, p["row"]),
            "cpi": derived["cpi"],
            "credits": derived["total_credits"],
        })


# ==========================================
#   MAIN IMPORT
# ==========================================

def build_record(p: Dict[str, Any], batch_id: str, created_at: datetime) -> ExamResult:
    return ExamResult(
        st_id=p["st_id"],
        name=p["name"],
        instcode=p["instcode"],
        inst_name=p["inst_name"],
        branch_name=p["branch_name"],
        branch_code=p["branch_code"],
        course_name=p["course_name"],
        semester=p["semester"],
        academic_year=p["academic_year"],
        exam=p["exam"],
        examid=p["examid"],
        extype=p["extype"],
        declaration_date=p["declaration_date"],
        map_number=p["map_number"],
        unit_no=p["unit_no"],
        exam_number=p["exam_number"],
        trials=p["trials"],
        remark=p["remark"],
        subjects=p["subjects"],
        subject_count=len(p["subjects"]),
        total_credits=p["total_credits"],
        earned_credits=p["earned_credits"],
        spi=p["spi"],
        cpi=p["cpi"],
        result=p["result"],
        upload_batch=batch_id,
        created_at=created_at,
        updated_at=created_at,
    )


def persist_batch(db: Session, records: List[ExamResult], batch_id: str) -> int:
    """Insert in chunks inside one transaction; any storage failure rolls back the whole batch."""
    chunk_size = max(1, settings.IMPORT_CHUNK_SIZE)
    try:
        for start in range(0, len(records), chunk_size):
            chunk = records[start:start + chunk_size]
            db.add_all(chunk)
            db.flush()
            for obj in chunk:
                db.expunge(obj)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Import of batch %s failed, rolled back: %s", batch_id, e)
        raise StorageTransactionError(
            f"Database error. No results were imported. Error: {e}"
        ) from e
    return len(records)


def import_dataframe(db: Session, df: pd.DataFrame) -> Dict[str, Any]:
    errors: List[Dict[str, Any]] = []
    warnings: List[Dict[str, Any]] = []
    parsed_rows: List[Dict[str, Any]] = []
    total_rows = len(df)

    columns = set(df.columns)
    indexes = subject_indexes(columns)
    batch_id = new_batch_id()

    for position, (_, row) in enumerate(df.iterrows()):
        row_num = position + 2  # spreadsheet row number (1-indexed + header)

        # Skip completely empty rows
        if row.isna().all():
            continue

        row_warnings: List[Dict[str, Any]] = []
        try:
            parsed = parse_row(row, row_num, columns, indexes, row_warnings)
        except RowValidationError as e:
            errors.append({"row": e.row, "error": e.reason})
            continue

        parsed["row"] = row_num
        parsed_rows.append(parsed)
        warnings.extend(row_warnings)

    compute_derived(db, parsed_rows, warnings)
    warnings.sort(key=lambda w: w["row"])

    created_at = datetime.now(timezone.utc).replace(tzinfo=None)
    records = [build_record(p, batch_id, created_at) for p in parsed_rows]

    imported_count = persist_batch(db, records, batch_id) if records else 0

    logger.info(
        "Imported batch %s: %d of %d rows, %d errors, %d warnings",
        batch_id, imported_count, total_rows, len(errors), len(warnings),
    )
    return {
        "batchId": batch_id,
        "importedCount": imported_count,
        "totalRows": total_rows,
        "errors": errors,
        "warnings": warnings,
    }


def import_results(db: Session, filename: str, contents: bytes) -> Dict[str, Any]:
    """Import one uploaded file as a new batch."""
    df = read_table(filename, contents)
    return import_dataframe(db, df)


# ==========================================
#   SAMPLE TEMPLATE
# ==========================================

def import_template() -> Dict[str, Any]:
    return {
        "required_columns": list(REQUIRED_FIELDS),
        "subject_columns": [subject_column("N", f) for f in SUBJECT_FIELDS] + [subject_column("N", SUBJECT_FLAG)],
        "optional_columns": list(OPTIONAL_FIELDS),
        "notes": [
            "One row per student per exam; repeat sub1_*, sub2_*, ... for each subject",
            "grade must be one of " + ", ".join(grading.GRADE_POINTS),
            "sub{N}_isBacklog is optional and overrides the backlog flag implied by the grade",
            "spi and cpi are optional and are computed when left blank",
            "declarationDate should be in format: YYYY-MM-DD or DD-MM-YYYY or DD/MM/YYYY",
            "Every upload becomes a separate batch that can be deleted as a whole",
        ],
    }
