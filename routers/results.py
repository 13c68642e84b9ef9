from fastapi import APIRouter, Depends, HTTPException, File, UploadFile, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session
from database import get_db, get_session_factory
from services import result_import, result_repository, batches, analytics, result_export
from services.exceptions import (
    NotFoundError, FilterValidationError, StorageTransactionError,
    ImportFileError, AnalysisTimeoutError,
)
from services.result_repository import ResultFilters, result_to_dict
from schemas.results import (
    ResultListResponse, ResultDetailResponse, StudentResultsResponse, BatchListResponse,
    DeleteResponse, ImportResponse, AnalysisResponse, TemplateResponse,
)
from config import settings
from typing import Optional
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/results", tags=["Results"])


def _success(data):
    return {"status": "success", "data": data}


def _filters_from(request: Request) -> ResultFilters:
    try:
        return ResultFilters.from_params(request.query_params)
    except FilterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


# ===============================
#   1. SPECIFIC ROUTES (KEEP ABOVE /{result_id})
# ===============================

# --- Import a results sheet as a new batch ---
@router.post("/import", response_model=ImportResponse, response_model_exclude_none=True)
def import_results(file: UploadFile = File(...), db: Session = Depends(get_db)):
    """
    Import exam results from a CSV / Excel file.
    Bad rows are skipped and reported; the good ones land together as one batch.
    """
    contents = file.file.read()
    try:
        report = result_import.import_results(db, file.filename, contents)
    except ImportFileError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StorageTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _success(report)


# --- Expected columns for the upload sheet ---
@router.get("/template", response_model=TemplateResponse)
def get_import_template():
    return _success(result_import.import_template())


# --- Upload batches ---
@router.get("/batches", response_model=BatchListResponse)
def get_upload_batches(db: Session = Depends(get_db)):
    return _success({"batches": batches.list_batches(db)})


@router.delete("/batch/{batch_id}", response_model=DeleteResponse)
def delete_results_by_batch(batch_id: str, db: Session = Depends(get_db)):
    try:
        return _success(batches.delete_batch(db, batch_id))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))


# --- CSV export (same columns as import) ---
@router.get("/export")
def export_results(request: Request, session_factory=Depends(get_session_factory)):
    filters = _filters_from(request)
    return StreamingResponse(
        result_export.stream_csv(session_factory, filters),
        media_type="text/csv",
        headers={"Content-Disposition": "attachment; filename=results.csv"},
    )


# --- Branch-wise analysis ---
@router.get("/analysis/branch", response_model=AnalysisResponse)
def get_branch_analysis(
    academicYear: Optional[str] = None,
    examid: Optional[str] = None,
    timeout: Optional[float] = None,
    db: Session = Depends(get_db),
):
    try:
        analysis = analytics.analyze_branches(
            db,
            academic_year=academicYear,
            examid=examid,
            timeout=timeout if timeout is not None else settings.ANALYSIS_TIMEOUT_SECONDS,
        )
    except FilterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except AnalysisTimeoutError as e:
        raise HTTPException(status_code=504, detail=str(e))
    return _success({"analysis": analysis})


# --- One student's history across semesters ---
@router.get("/student/{st_id}", response_model=StudentResultsResponse)
def get_student_results(st_id: str, db: Session = Depends(get_db)):
    results = result_repository.get_student_results(db, st_id)
    return _success({
        "results": [result_to_dict(r) for r in results],
        "summary": result_repository.summarize_student_history(results),
    })


# ===============================
#   2. LISTING & SINGLE RESULT
# ===============================

@router.get("/", response_model=ResultListResponse)
def get_all_results(
    request: Request,
    page: Optional[str] = None,
    limit: Optional[str] = None,
    db: Session = Depends(get_db),
):
    filters = _filters_from(request)
    try:
        rows, pagination = result_repository.query_results(db, filters, page=page, limit=limit)
    except FilterValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _success({
        "results": [result_to_dict(r) for r in rows],
        "pagination": pagination,
    })


@router.get("/{result_id}", response_model=ResultDetailResponse)
def get_result(result_id: int, db: Session = Depends(get_db)):
    try:
        result = result_repository.get_result(db, result_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _success({"result": result_to_dict(result)})


@router.delete("/{result_id}", response_model=DeleteResponse)
def delete_result(result_id: int, db: Session = Depends(get_db)):
    try:
        deleted = result_repository.delete_result(db, result_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except StorageTransactionError as e:
        raise HTTPException(status_code=500, detail=str(e))
    return _success({"deletedCount": deleted})
