from conftest import make_row


def seed_listing(upload):
    rows = [make_row(f"S{i:02d}") for i in range(1, 26)]
    rows += [make_row(f"M{i:02d}", branchName="Mechanical Engineering") for i in range(1, 4)]
    rows += [make_row(f"T{i:02d}", semester="6") for i in range(1, 3)]
    return upload(rows)


def test_filter_and_paginate(client, upload):
    seed_listing(upload)
    response = client.get("/api/v1/results/", params={
        "branchName": "Computer Engineering", "semester": 4, "page": 2, "limit": 10,
    })
    assert response.status_code == 200
    data = response.json()["data"]

    assert [r["st_id"] for r in data["results"]] == [f"S{i:02d}" for i in range(11, 21)]
    assert data["pagination"] == {"total": 25, "page": 2, "limit": 10, "pages": 3}


def test_ordering_newest_declaration_first(client, upload):
    upload([
        make_row("B", declarationDate="2023-12-01"),
        make_row("A", declarationDate="2023-12-01"),
        make_row("C", declarationDate="2024-06-15"),
    ])
    results = client.get("/api/v1/results/").json()["data"]["results"]
    assert [r["st_id"] for r in results] == ["C", "A", "B"]


def test_unknown_filter_keys_are_ignored(client, upload):
    upload([make_row("S001"), make_row("S002")])
    data = client.get("/api/v1/results/", params={"colour": "blue", "academicYear": ""}).json()["data"]
    assert data["pagination"]["total"] == 2


def test_bad_filter_values_rejected(client, upload):
    upload([make_row("S001")])
    assert client.get("/api/v1/results/", params={"examid": "abc"}).status_code == 400
    assert client.get("/api/v1/results/", params={"semester": "4.5"}).status_code == 400
    assert client.get("/api/v1/results/", params={"page": 0}).status_code == 400
    assert client.get("/api/v1/results/", params={"limit": 100000}).status_code == 400


def test_page_past_the_end_is_empty_but_counts_total(client, upload):
    upload([make_row("S001"), make_row("S002")])
    data = client.get("/api/v1/results/", params={"page": 5, "limit": 1}).json()["data"]
    assert data["results"] == []
    assert data["pagination"] == {"total": 2, "page": 5, "limit": 1, "pages": 2}


def test_get_result_by_id(client, upload):
    upload([make_row("S001")])
    listed = client.get("/api/v1/results/").json()["data"]["results"][0]

    response = client.get(f"/api/v1/results/{listed['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["result"] == listed
    assert client.get("/api/v1/results/999999").status_code == 404


def test_student_history_and_summary(client, upload):
    upload([make_row("S001", grades=("AA", "FF"), semester="3", declarationDate="2023-12-01", cpi="7")])
    upload([
        make_row("S001", grades=("AA", "BB"), semester="4", declarationDate="2024-06-15", cpi="7.5"),
        make_row("S002"),
    ])

    data = client.get("/api/v1/results/student/S001").json()["data"]
    assert [r["semester"] for r in data["results"]] == [3, 4]
    assert len({r["uploadBatch"] for r in data["results"]}) == 2
    assert data["summary"]["latestCpi"] == 7.5
    assert data["summary"]["totalEarnedCredits"] == 4 + 7
    # C02 failed in sem 3, cleared in sem 4
    assert data["summary"]["activeBacklogs"] == 0
    assert data["summary"]["semesters"] == [3, 4]


def test_student_without_results(client):
    data = client.get("/api/v1/results/student/NOBODY").json()["data"]
    assert data["results"] == []
    assert data["summary"]["activeBacklogs"] == 0


def test_delete_single_result(client, upload):
    batch = upload([make_row("S001"), make_row("S002")])
    target = client.get("/api/v1/results/").json()["data"]["results"][0]

    response = client.delete(f"/api/v1/results/{target['id']}")
    assert response.status_code == 200
    assert response.json()["data"]["deletedCount"] == 1
    assert client.get(f"/api/v1/results/{target['id']}").status_code == 404

    batches = client.get("/api/v1/results/batches").json()["data"]["batches"]
    assert batches == [{"batchId": batch["batchId"], "count": 1, "latestUpload": batches[0]["latestUpload"]}]
    assert client.delete(f"/api/v1/results/{target['id']}").status_code == 404
