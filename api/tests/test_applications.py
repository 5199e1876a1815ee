from __future__ import annotations

import asyncio

import pytest

from conftest import PortalApi
from portal.services.repository import RepositoryConflictError


@pytest.fixture
def posted(api: PortalApi) -> dict:
    employer, employer_user = api.register("employer")
    job = api.create_job(employer)
    return {"employer": employer, "employer_user": employer_user, "job": job}


def test_candidate_applies_once(api: PortalApi, posted: dict) -> None:
    candidate, candidate_user = api.register("candidate")

    application = api.apply(candidate, posted["job"]["id"], cover_letter="Hire me")
    assert application["application_status"] == "pending"
    assert application["candidate_id"] == candidate_user["id"]
    assert application["job_title"] == posted["job"]["title"]

    duplicate = api.client.post(
        "/api/applications",
        json={"job_id": posted["job"]["id"]},
        headers=api.headers(candidate),
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == "already applied for this job"


def test_storage_rejects_duplicate_when_precheck_is_bypassed(
    api: PortalApi,
    posted: dict,
    repository,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    candidate, _ = api.register("candidate")
    api.apply(candidate, posted["job"]["id"])

    async def never_found(**_: object) -> None:
        return None

    monkeypatch.setattr(repository, "find_application", never_found)
    response = api.client.post(
        "/api/applications",
        json={"job_id": posted["job"]["id"]},
        headers=api.headers(candidate),
    )

    assert response.status_code == 409
    assert len(asyncio.run(repository.list_applications(job_id=posted["job"]["id"]))) == 1


def test_repository_enforces_one_application_per_candidate_and_job(api: PortalApi, posted: dict, repository) -> None:
    _, candidate_user = api.register("candidate")

    async def apply_twice() -> None:
        await repository.create_application(job_id=posted["job"]["id"], candidate_id=candidate_user["id"])
        await repository.create_application(job_id=posted["job"]["id"], candidate_id=candidate_user["id"])

    with pytest.raises(RepositoryConflictError):
        asyncio.run(apply_twice())


def test_only_candidates_apply(api: PortalApi, posted: dict) -> None:
    response = api.client.post(
        "/api/applications",
        json={"job_id": posted["job"]["id"]},
        headers=api.headers(posted["employer"]),
    )

    assert response.status_code == 403


def test_cannot_apply_to_inactive_or_missing_job(api: PortalApi, posted: dict) -> None:
    candidate, _ = api.register("candidate")
    inactive = api.create_job(posted["employer"], job_status="Inactive")

    closed = api.client.post("/api/applications", json={"job_id": inactive["id"]}, headers=api.headers(candidate))
    missing = api.client.post("/api/applications", json={"job_id": "nope"}, headers=api.headers(candidate))

    assert closed.status_code == 400
    assert closed.json()["detail"] == "job is not active"
    assert missing.status_code == 404


def test_job_applications_visible_to_owner_and_admin_only(api: PortalApi, posted: dict) -> None:
    candidate, _ = api.register("candidate")
    other_employer, _ = api.register("employer")
    api.apply(candidate, posted["job"]["id"])
    path = f"/api/applications/job/{posted['job']['id']}"

    owner_view = api.client.get(path, headers=api.headers(posted["employer"]))
    admin_view = api.client.get(path, headers=api.headers(api.admin_token()))
    other_view = api.client.get(path, headers=api.headers(other_employer))
    candidate_view = api.client.get(path, headers=api.headers(candidate))

    assert owner_view.status_code == 200
    assert len(owner_view.json()) == 1
    assert admin_view.status_code == 200
    assert other_view.status_code == 403
    assert candidate_view.status_code == 403


def test_job_owner_reviews_application(api: PortalApi, posted: dict) -> None:
    candidate, _ = api.register("candidate")
    other_employer, _ = api.register("employer")
    application = api.apply(candidate, posted["job"]["id"])
    path = f"/api/applications/{application['id']}/status"

    assert api.client.patch(path, json={"status": "accepted"}, headers=api.headers(candidate)).status_code == 403
    assert api.client.patch(path, json={"status": "accepted"}, headers=api.headers(other_employer)).status_code == 403
    assert api.client.patch(path, json={"status": "hired"}, headers=api.headers(posted["employer"])).status_code == 400

    response = api.client.patch(path, json={"status": "accepted"}, headers=api.headers(posted["employer"]))
    assert response.status_code == 200
    assert response.json()["application_status"] == "accepted"

    mine = api.client.get("/api/applications/my", headers=api.headers(candidate)).json()
    assert mine[0]["application_status"] == "accepted"


def test_status_update_for_missing_application_is_404(api: PortalApi, posted: dict) -> None:
    response = api.client.patch(
        "/api/applications/missing/status",
        json={"status": "rejected"},
        headers=api.headers(posted["employer"]),
    )

    assert response.status_code == 404


def test_withdraw_application(api: PortalApi, posted: dict) -> None:
    candidate, _ = api.register("candidate")
    other_candidate, _ = api.register("candidate")
    application = api.apply(candidate, posted["job"]["id"])
    path = f"/api/applications/{application['id']}"

    assert api.client.delete(path, headers=api.headers(other_candidate)).status_code == 403
    assert api.client.delete(path, headers=api.headers(posted["employer"])).status_code == 403

    response = api.client.delete(path, headers=api.headers(candidate))
    assert response.status_code == 200
    assert api.client.get("/api/applications/my", headers=api.headers(candidate)).json() == []

    # A withdrawn application frees the slot for a new one.
    api.apply(candidate, posted["job"]["id"])


def test_application_history_stats(api: PortalApi, posted: dict) -> None:
    candidate, _ = api.register("candidate")
    second_job = api.create_job(posted["employer"], company_name="Globex", job_type="Contract")
    third_job = api.create_job(posted["employer"], company_name="Globex")
    for job in (posted["job"], second_job, third_job):
        api.apply(candidate, job["id"])

    response = api.client.get("/api/applications/my/history", headers=api.headers(candidate))

    assert response.status_code == 200
    body = response.json()
    assert len(body["applications"]) == 3
    assert body["stats"] == {"total": 3, "companies_applied_to": 2, "job_types_applied_for": 2}


def test_admin_lists_all_applications_with_status_filter(api: PortalApi, posted: dict) -> None:
    first, _ = api.register("candidate")
    second, _ = api.register("candidate")
    accepted = api.apply(first, posted["job"]["id"])
    api.apply(second, posted["job"]["id"])
    api.client.patch(
        f"/api/applications/{accepted['id']}/status",
        json={"status": "accepted"},
        headers=api.headers(posted["employer"]),
    )
    admin = api.headers(api.admin_token())

    everything = api.client.get("/api/admin/applications", headers=admin)
    only_accepted = api.client.get("/api/applications", params={"status": "accepted"}, headers=admin)
    as_employer = api.client.get("/api/applications", headers=api.headers(posted["employer"]))

    assert len(everything.json()) == 2
    assert [row["id"] for row in only_accepted.json()] == [accepted["id"]]
    assert as_employer.status_code == 403
