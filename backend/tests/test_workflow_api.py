"""End-to-end complaint workflow over HTTP."""

import pytest
from sqlalchemy import exc as sa_exc
from sqlalchemy import func, select

from app.auth.context import Principal
from app.auth.roles import Role
from app.errors import ForbiddenError, InvalidTransitionError
from app.models import Complaint
from app.services.audit_service import AuditService
from app.services.complaint_service import ComplaintService
from app.services.response_ledger import ResponseLedger
from app.services.state_machine import ComplaintStateMachine
from tests.conftest import auth_header, file_complaint


def _new_complaint(directory, **overrides) -> dict:
    body = {
        "title": "Overflowing storm drain",
        "description": "Storm drain on Oak Avenue floods the crossing every time it rains.",
        "category_id": directory.roads.id,
        "agency_id": directory.public_works.id,
        "location": "Oak Ave & 5th",
        "priority": "HIGH",
    }
    body.update(overrides)
    return body


@pytest.mark.asyncio
class TestComplaintLifecycle:
    async def test_full_lifecycle(self, client, directory, principals):
        """File, triage with the wrong and right agency, respond with a transition, then stop at bad edges."""
        created = await client.post(
            "/api/complaints", headers=auth_header(principals.citizen), json=_new_complaint(directory),
        )
        assert created.status_code == 201
        complaint = created.json()
        assert complaint["status"] == "SUBMITTED"
        assert complaint["agency_name"] == "Public Works"
        assert complaint["allowed_transitions"] == ["REJECTED", "UNDER_REVIEW"]
        url = f"/api/complaints/{complaint['id']}"

        # Another agency's official cannot even see it
        resp = await client.patch(f"{url}/status", headers=auth_header(principals.parks_official),
                                  json={"status": "UNDER_REVIEW"})
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Not found", "error": "not_found"}

        resp = await client.patch(f"{url}/status", headers=auth_header(principals.official),
                                  json={"status": "UNDER_REVIEW"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "UNDER_REVIEW"

        resp = await client.post(f"{url}/responses", headers=auth_header(principals.official),
                                 json={"content": "Reviewed, escalating.", "status": "IN_PROGRESS"})
        assert resp.status_code == 201
        assert resp.json()["previous_status"] == "UNDER_REVIEW"
        assert resp.json()["new_status"] == "IN_PROGRESS"

        thread = await client.get(f"{url}/responses", headers=auth_header(principals.citizen))
        assert thread.status_code == 200
        assert len(thread.json()) == 1

        detail = await client.get(url, headers=auth_header(principals.citizen))
        assert detail.json()["status"] == "IN_PROGRESS"

        resp = await client.patch(f"{url}/status", headers=auth_header(principals.official),
                                  json={"status": "SUBMITTED"})
        assert resp.status_code == 409
        assert resp.json()["error"] == "invalid_transition"
        assert resp.json()["allowed"] == ["REJECTED", "RESOLVED"]

        resp = await client.patch(f"{url}/status", headers=auth_header(principals.admin),
                                  json={"status": "RESOLVED"})
        assert resp.status_code == 403

    async def test_same_lifecycle_without_http(self, session_factory, directory):
        """The core operations take the principal explicitly and need no request context."""
        u1 = Principal(id="u1", role=Role.CITIZEN)
        o1 = Principal(id="o1", role=Role.AGENCY_OFFICIAL, agency_id=directory.parks.id)
        o2 = Principal(id="o2", role=Role.AGENCY_OFFICIAL, agency_id=directory.public_works.id)
        admin = Principal(id="root", role=Role.ADMIN)

        async with session_factory() as session:
            c1 = await ComplaintService(session).create_complaint(
                u1, **_new_complaint(directory),
            )
            await session.commit()

        async with session_factory() as session:
            machine = ComplaintStateMachine(session)
            with pytest.raises(ForbiddenError):
                await machine.transition(c1.id, "UNDER_REVIEW", o1)
            assert (await machine.transition(c1.id, "UNDER_REVIEW", o2)).status == "UNDER_REVIEW"
            await session.commit()

        async with session_factory() as session:
            ledger = ResponseLedger(session)
            await ledger.add_response(c1.id, "Reviewed, escalating.", o2, new_status="IN_PROGRESS")
            await session.commit()
            assert len(await ledger.list_responses(c1.id, u1)) == 1

        async with session_factory() as session:
            machine = ComplaintStateMachine(session)
            with pytest.raises(InvalidTransitionError):
                await machine.transition(c1.id, "SUBMITTED", o2)
            with pytest.raises(ForbiddenError):
                await machine.transition(c1.id, "RESOLVED", admin)
            row = await ComplaintService(session).get_complaint(u1, c1.id)
            assert row.complaint.status == "IN_PROGRESS"


@pytest.mark.asyncio
class TestErrorMapping:
    async def test_staff_cannot_file(self, client, directory, principals):
        resp = await client.post("/api/complaints", headers=auth_header(principals.official),
                                 json=_new_complaint(directory))
        assert resp.status_code == 403
        assert resp.json()["error"] == "forbidden"

    async def test_body_validation_is_400(self, client, directory, principals):
        resp = await client.post("/api/complaints", headers=auth_header(principals.citizen),
                                 json=_new_complaint(directory, priority="CRITICAL"))
        assert resp.status_code == 400
        assert resp.json()["error"] == "validation_error"

    async def test_unknown_agency_is_400(self, client, directory, principals):
        resp = await client.post("/api/complaints", headers=auth_header(principals.citizen),
                                 json=_new_complaint(directory, agency_id=9999))
        assert resp.status_code == 400

    async def test_short_response_is_400(self, client, directory, principals, session_factory):
        complaint = await file_complaint(session_factory, directory, principals.citizen)
        resp = await client.post(f"/api/complaints/{complaint.id}/responses",
                                 headers=auth_header(principals.official), json={"content": "ok"})
        assert resp.status_code == 400

    async def test_other_citizen_gets_404(self, client, directory, principals, session_factory):
        complaint = await file_complaint(session_factory, directory, principals.citizen)
        resp = await client.get(f"/api/complaints/{complaint.id}", headers=auth_header(principals.other_citizen))
        assert resp.status_code == 404

    async def test_referenced_agency_delete_is_409(self, client, directory, principals, session_factory):
        await file_complaint(session_factory, directory, principals.citizen)
        resp = await client.delete(f"/api/agencies/{directory.public_works.id}",
                                   headers=auth_header(principals.admin))
        assert resp.status_code == 409
        assert resp.json()["reference_count"] == 1

    async def test_unreferenced_category_delete_is_204(self, client, directory, principals):
        resp = await client.delete(f"/api/categories/{directory.noise.id}", headers=auth_header(principals.admin))
        assert resp.status_code == 204
        resp = await client.get(f"/api/categories/{directory.noise.id}", headers=auth_header(principals.admin))
        assert resp.status_code == 404


    async def test_unreferenced_agency_delete_is_204(self, client, directory, principals):
        resp = await client.delete(f"/api/agencies/{directory.parks.id}", headers=auth_header(principals.admin))
        assert resp.status_code == 204
        resp = await client.get(f"/api/agencies/{directory.parks.id}", headers=auth_header(principals.admin))
        assert resp.status_code == 404

    async def test_store_timeout_is_504(self, client, directory, principals, session_factory, monkeypatch):
        async def slow_audit(*args, **kwargs):
            raise sa_exc.TimeoutError("QueuePool limit reached, connection timed out")

        monkeypatch.setattr(AuditService, "log_complaint_created", slow_audit)
        resp = await client.post("/api/complaints", headers=auth_header(principals.citizen),
                                 json=_new_complaint(directory))
        assert resp.status_code == 504
        assert resp.json()["error"] == "timeout"

        async with session_factory() as session:
            assert (await session.execute(select(func.count()).select_from(Complaint))).scalar() == 0


@pytest.mark.asyncio
class TestListingApi:
    async def test_citizen_listing_is_scoped(self, client, directory, principals, session_factory):
        await file_complaint(session_factory, directory, principals.citizen, title="Mine")
        await file_complaint(session_factory, directory, principals.other_citizen, title="Theirs")

        resp = await client.get("/api/complaints", headers=auth_header(principals.citizen))
        assert resp.status_code == 200
        data = resp.json()
        assert data["total"] == 1
        assert data["items"][0]["title"] == "Mine"

    async def test_page_size_capped(self, client, principals):
        resp = await client.get("/api/complaints?size=101", headers=auth_header(principals.admin))
        assert resp.status_code == 400

    async def test_audit_trail_readable_by_admin_only(self, client, directory, principals):
        await client.post("/api/complaints", headers=auth_header(principals.citizen), json=_new_complaint(directory))

        resp = await client.get("/api/audit", headers=auth_header(principals.admin))
        assert resp.status_code == 200
        assert resp.json()["items"][0]["event_type"] == "complaint_created"

        integrity = await client.get("/api/audit/integrity", headers=auth_header(principals.admin))
        assert integrity.json()["valid"] is True

        resp = await client.get("/api/audit", headers=auth_header(principals.official))
        assert resp.status_code == 403
