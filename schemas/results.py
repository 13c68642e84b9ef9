from pydantic import BaseModel
from typing import List, Optional, Any


# 1. Subject inside a result (stored as JSON on the result row)
class SubjectSchema(BaseModel):
    code: str
    name: str
    credits: float
    grade: str
    isBacklog: bool


# 2. Full result as returned to the portal
class ResultSchema(BaseModel):
    id: int
    st_id: str
    name: str
    instcode: Optional[str] = None
    instName: Optional[str] = None
    branchName: str
    branchCode: Optional[str] = None
    courseName: Optional[str] = None
    semester: int
    academicYear: str
    exam: str
    examid: int
    extype: Optional[str] = None
    declarationDate: str
    mapNumber: Optional[int] = None
    unitNo: Optional[int] = None
    examNumber: Optional[int] = None
    trials: Optional[int] = None
    remark: Optional[str] = None
    subjects: List[SubjectSchema]
    totalCredits: float
    earnedCredits: float
    spi: float
    cpi: float
    cgpa: float
    result: str
    uploadBatch: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None


class PaginationSchema(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class ResultListData(BaseModel):
    results: List[ResultSchema]
    pagination: PaginationSchema


class ResultListResponse(BaseModel):
    status: str = "success"
    data: ResultListData


class ResultDetailData(BaseModel):
    result: ResultSchema


class ResultDetailResponse(BaseModel):
    status: str = "success"
    data: ResultDetailData


class StudentSummarySchema(BaseModel):
    latestCpi: float
    totalEarnedCredits: float
    activeBacklogs: int
    semesters: List[int]


class StudentResultsData(BaseModel):
    results: List[ResultSchema]
    summary: StudentSummarySchema


class StudentResultsResponse(BaseModel):
    status: str = "success"
    data: StudentResultsData


# 3. Upload batches (derived, never stored)
class BatchSchema(BaseModel):
    batchId: str
    count: int
    latestUpload: Optional[str] = None


class BatchListData(BaseModel):
    batches: List[BatchSchema]


class BatchListResponse(BaseModel):
    status: str = "success"
    data: BatchListData


class DeleteData(BaseModel):
    deletedCount: int


class DeleteResponse(BaseModel):
    status: str = "success"
    data: DeleteData


# 4. Import manifest
class RowIssue(BaseModel):
    row: int
    error: Optional[str] = None
    warning: Optional[str] = None


class ImportData(BaseModel):
    batchId: str
    importedCount: int
    totalRows: int
    errors: List[RowIssue]
    warnings: List[RowIssue]


class ImportResponse(BaseModel):
    status: str = "success"
    data: ImportData


# 5. Branch analysis
class BranchAnalysisSchema(BaseModel):
    branchName: str
    semester: int
    totalStudents: int
    passCount: int
    distinctionCount: int
    firstClassCount: int
    secondClassCount: int
    passPercentage: float
    avgSpi: float
    avgCpi: float


class AnalysisData(BaseModel):
    analysis: List[BranchAnalysisSchema]


class AnalysisResponse(BaseModel):
    status: str = "success"
    data: AnalysisData


class TemplateResponse(BaseModel):
    status: str = "success"
    data: Any
