from sqlalchemy import Column, Integer, String, Float, Date, DateTime, JSON, Index
from database import Base
import datetime


def _utcnow():
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


# EXAM RESULT - one row per student per exam declaration (aggregate root)
class ExamResult(Base):
    __tablename__ = "exam_results"

    id = Column(Integer, primary_key=True, index=True)

    # --- STUDENT / INSTITUTE ---
    st_id = Column(String(50), nullable=False, index=True)
    name = Column(String(150), nullable=False)
    instcode = Column(String(20), nullable=True)
    inst_name = Column(String(255), nullable=True)

    # --- ACADEMIC CONTEXT ---
    branch_name = Column(String(150), nullable=False, index=True)
    branch_code = Column(String(20), nullable=True)
    course_name = Column(String(150), nullable=True)
    semester = Column(Integer, nullable=False, index=True)
    academic_year = Column(String(20), nullable=False, index=True)
    exam = Column(String(150), nullable=False)
    examid = Column(Integer, nullable=False, index=True)
    extype = Column(String(50), nullable=True)
    declaration_date = Column(Date, nullable=False)

    # Extra identifiers printed on the university marksheet
    map_number = Column(Integer, nullable=True)
    unit_no = Column(Integer, nullable=True)
    exam_number = Column(Integer, nullable=True)
    trials = Column(Integer, nullable=True)
    remark = Column(String(255), nullable=True)

    # Ordered list of {"code", "name", "credits", "grade", "isBacklog"}
    subjects = Column(JSON, nullable=False, default=list)
    subject_count = Column(Integer, nullable=False, default=0)

    # --- DERIVED ---
    total_credits = Column(Float, default=0.0)
    earned_credits = Column(Float, default=0.0)
    spi = Column(Float, default=0.0)
    cpi = Column(Float, default=0.0)
    result = Column(String(10), nullable=False)  # PASS / FAIL

    # Batch tag: the only link used for cascading deletion
    upload_batch = Column(String(64), nullable=False, index=True)

    created_at = Column(DateTime, default=_utcnow, nullable=False)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow, nullable=False)

    __table_args__ = (
        Index("ix_exam_results_listing", "declaration_date", "st_id"),
        Index("ix_exam_results_branch_sem", "branch_name", "semester"),
        # ids only ever grow, so an export can bound its snapshot by max(id)
        {"sqlite_autoincrement": True},
    )

    @property
    def cgpa(self):
        return self.cpi
