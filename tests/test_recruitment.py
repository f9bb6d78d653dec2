import pytest


@pytest.fixture
def posting(admin_client, backend):
    response = admin_client.post("/hrms/job-postings", json={
        "title": " Compliance Analyst ",
        "department": "Compliance",
        "salary_range_min": 400000,
        "salary_range_max": 650000,
    })
    assert response.status_code == 200
    return response.json()["data"]


def test_job_posting_salary_range(admin_client, backend):
    response = admin_client.post("/hrms/job-postings", json={
        "title": "Ops Lead",
        "salary_range_min": 900000,
        "salary_range_max": 600000,
    })
    assert response.status_code == 400
    assert response.json()["detail"] == "Minimum salary cannot exceed maximum salary"
    assert not backend.called("insert", "job_postings")


def test_job_posting_created_open(admin_client, posting):
    assert posting["title"] == "Compliance Analyst"
    assert posting["status"] == "OPEN"
    assert posting["created_by"] == "u-admin"

    listed = admin_client.get("/hrms/job-postings", params={"status": "OPEN"}).json()
    assert [p["id"] for p in listed] == [posting["id"]]


def test_applicants_only_join_open_postings(admin_client, backend, posting):
    applicant = {"name": "Asha Rao", "email": "Asha@Example.com", "job_posting_id": posting["id"]}
    response = admin_client.post("/hrms/applicants", json=applicant)
    assert response.status_code == 200
    created = response.json()["data"]
    assert created["email"] == "asha@example.com"
    assert created["is_interested"] is True
    assert created["stage"] == "APPLIED"

    response = admin_client.patch(f"/hrms/job-postings/{posting['id']}/status", json={"status": "CLOSED"})
    assert response.status_code == 200
    assert response.json()["toast"]["description"] == "Status changed to CLOSED"

    response = admin_client.post("/hrms/applicants", json=applicant)
    assert response.status_code == 400
    assert response.json()["detail"] == "Applicants can only be added to open job postings"
    assert len(backend.rows("job_applicants")) == 1


def test_applicant_email_validation(admin_client, posting):
    response = admin_client.post("/hrms/applicants",
                                 json={"name": "Asha Rao", "email": "asha", "job_posting_id": posting["id"]})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please enter a valid email address"


def test_schedule_interview(admin_client, backend, posting):
    applicant = admin_client.post("/hrms/applicants", json={
        "name": "Asha Rao", "email": "asha@example.com", "job_posting_id": posting["id"],
    }).json()["data"]

    response = admin_client.post("/hrms/interviews", json={"applicant_id": applicant["id"]})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please select an interview date"

    response = admin_client.post("/hrms/interviews", json={
        "applicant_id": applicant["id"],
        "interview_date": "2026-10-20T10:30:00",
        "interview_type": "HR",
        "interviewer_name": "Priya",
    })
    assert response.status_code == 200
    interview = backend.rows("interview_schedules")[0]
    assert interview["status"] == "SCHEDULED"
    assert interview["interview_type"] == "HR"
    assert interview["interview_date"].startswith("2026-10-20T10:30")


def test_interview_for_unknown_applicant(admin_client, backend):
    response = admin_client.post("/hrms/interviews", json={"applicant_id": "ghost", "interview_date": "2026-10-20T10:30:00"})
    assert response.status_code == 404
    assert not backend.called("insert", "interview_schedules")


def test_offer_document_upload(admin_client, backend):
    response = admin_client.post(
        "/hrms/offer-documents",
        data={"applicant_id": "app-1", "document_type": "OFFER_LETTER"},
        files={"file": ("offer letter.pdf", b"%PDF-1.4 offer", "application/pdf")},
    )
    assert response.status_code == 200
    document = response.json()["data"]
    assert document["document_url"].startswith("memory://sales_attachments/offer-documents/")
    assert document["document_url"].endswith("-offer_letter.pdf")


def test_offer_document_needs_file_or_url(admin_client, backend):
    response = admin_client.post("/hrms/offer-documents", data={"applicant_id": "app-1"})
    assert response.status_code == 400
    assert response.json()["detail"] == "Please upload a document or provide its URL"
