"""
Upload batch lifecycle.
A batch is not stored anywhere; it is the GROUP BY of results on their upload_batch tag.
"""
import logging
from typing import List, Dict, Any

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from config import settings
from database import begin_isolated
from models.results import ExamResult
from services.exceptions import NotFoundError, StorageTransactionError

logger = logging.getLogger(__name__)


def list_batches(db: Session) -> List[Dict[str, Any]]:
    rows = db.query(
        ExamResult.upload_batch,
        func.count(ExamResult.id).label("count"),
        func.max(ExamResult.created_at).label("latest_upload"),
    ).group_by(ExamResult.upload_batch).order_by(
        func.max(ExamResult.created_at).desc(), ExamResult.upload_batch.desc()
    ).all()

    return [
        {
            "batchId": batch_id,
            "count": count,
            "latestUpload": latest.isoformat() if latest else None,
        }
        for batch_id, count, latest in rows
    ]


def delete_batch(db: Session, batch_id: str) -> Dict[str, int]:
    """Remove every result of a batch in one transaction, or nothing at all.
    The DELETE itself decides membership, so rows removed concurrently are
    simply not counted."""
    try:
        begin_isolated(db, settings.BATCH_DELETE_ISOLATION)
        deleted = db.query(ExamResult).filter(
            ExamResult.upload_batch == batch_id
        ).delete(synchronize_session=False)

        if not deleted:
            db.rollback()
            raise NotFoundError(f"Batch '{batch_id}' not found")
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Deleting batch %s failed, rolled back: %s", batch_id, e)
        raise StorageTransactionError(f"Could not delete batch '{batch_id}': {e}") from e

    logger.info("Deleted batch %s (%d results)", batch_id, deleted)
    return {"deletedCount": deleted}
