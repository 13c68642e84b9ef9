import csv
import io
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, build_engine, get_db, get_session_factory
from main import app

engine = build_engine("sqlite://", poolclass=StaticPool)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

BASE_ROW = {
    "st_id": "S001",
    "name": "Asha Patel",
    "branchName": "Computer Engineering",
    "semester": "4",
    "academicYear": "2023-24",
    "exam": "Summer 2024",
    "examid": "101",
    "declarationDate": "2024-06-15",
    "instcode": "17",
    "instName": "Government Polytechnic",
}


def make_row(st_id="S001", grades=("AA", "BB"), credits=(4, 3), **overrides):
    row = dict(BASE_ROW, st_id=st_id, name=f"Student {st_id}")
    for n, (grade, credit) in enumerate(zip(grades, credits), start=1):
        row[f"sub{n}_code"] = f"C{n:02d}"
        row[f"sub{n}_name"] = f"Course {n}"
        row[f"sub{n}_credits"] = str(credit)
        row[f"sub{n}_grade"] = grade
    row.update(overrides)
    return row


def make_csv(rows) -> bytes:
    columns = []
    for row in rows:
        for key in row:
            if key not in columns:
                columns.append(key)
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=columns)
    writer.writeheader()
    for row in rows:
        writer.writerow(row)
    return buffer.getvalue().encode()


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: TestingSessionLocal
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def upload(client):
    def _upload(rows, filename="results.csv"):
        response = client.post(
            "/api/v1/results/import",
            files={"file": (filename, make_csv(rows), "text/csv")},
        )
        assert response.status_code == 200, response.text
        return response.json()["data"]
    return _upload
