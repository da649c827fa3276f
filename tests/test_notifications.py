import pytest

from participium.models import Report
from participium.notifications import format_inbox_message, record_status_change
from participium.permissions import UserRole

from factories import TURIN, auth_header, data_uri

LIGHTING = ("Public Lighting Department", "Electrical staff member")


def _payload(**overrides):
    payload = {
        "title": "Dark street",
        "description": "The street lamp is off",
        "category": "Public Lighting",
        "location": TURIN,
        "photos": [data_uri("PNG")],
    }
    payload.update(overrides)
    return payload


def test_inbox_message_mentions_both_statuses_and_reason():
    report = Report(
        id=7,
        reporter_id=1,
        title="Dark street",
        description="x",
        category="Public Lighting",
        latitude=45.07,
        longitude=7.68,
        status="Rejected",
        rejection_reason="Duplicate",
    )
    assert format_inbox_message(report, "Pending Approval") == (
        'Report #7 "Dark street" moved from Pending Approval to Rejected. Reason: Duplicate'
    )


@pytest.mark.asyncio
async def test_unchanged_status_leaves_no_entry(session, make_user):
    citizen, _ = await make_user("citizen")
    report = Report(
        reporter_id=citizen.id,
        title="Dark street",
        description="x",
        category="Public Lighting",
        latitude=45.07,
        longitude=7.68,
    )
    session.add(report)
    await session.commit()
    await session.refresh(report)

    assert await record_status_change(session, report, report.status) is None
    created = await record_status_change(session, report, None)
    assert created.user_id == citizen.id
    assert created.is_read is False


@pytest.mark.asyncio
async def test_status_changes_fill_the_reporter_inbox(client, make_user, make_staff):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    _, staff_token = await make_staff("sparky", *LIGHTING)
    created = (await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))).json()

    # Creation alone is not a status change
    resp = await client.get("/notifications", headers=auth_header(citizen_token))
    assert resp.status_code == 200
    assert resp.json() == []

    await client.put(f"/reports/{created['id']}/approve", headers=auth_header(pro_token))
    await client.put(
        f"/reports/{created['id']}/status",
        json={"status": "In Progress"},
        headers=auth_header(staff_token),
    )

    inbox = (await client.get("/notifications", headers=auth_header(citizen_token))).json()
    assert [(n["oldStatus"], n["newStatus"]) for n in inbox] == [
        ("Assigned", "In Progress"),
        ("Pending Approval", "Assigned"),
    ]
    assert all(n["reportId"] == created["id"] and n["isRead"] is False for n in inbox)
    assert inbox[0]["message"] == f'Report #{created["id"]} "Dark street" moved from Assigned to In Progress'

    # The officers acting on the report get nothing
    staff_inbox = (await client.get("/notifications", headers=auth_header(staff_token))).json()
    assert staff_inbox == []


@pytest.mark.asyncio
async def test_reject_notifies_anonymous_reporter_too(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    created = (
        await client.post("/reports", json=_payload(isAnonymous=True), headers=auth_header(citizen_token))
    ).json()

    await client.put(
        f"/reports/{created['id']}/reject",
        json={"reason": "Outside municipal competence"},
        headers=auth_header(pro_token),
    )

    inbox = (await client.get("/notifications", headers=auth_header(citizen_token))).json()
    assert len(inbox) == 1
    assert inbox[0]["newStatus"] == "Rejected"
    assert inbox[0]["message"].endswith("Reason: Outside municipal competence")


@pytest.mark.asyncio
async def test_approve_without_officer_sends_nothing(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    created = (await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))).json()

    resp = await client.put(f"/reports/{created['id']}/approve", headers=auth_header(pro_token))
    assert resp.json()["noOfficerFound"] is True

    inbox = (await client.get("/notifications", headers=auth_header(citizen_token))).json()
    assert inbox == []


@pytest.mark.asyncio
async def test_mark_read_and_read_all(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, other_token = await make_user("other")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    for title in ("First", "Second", "Third"):
        created = (
            await client.post("/reports", json=_payload(title=title), headers=auth_header(citizen_token))
        ).json()
        await client.put(
            f"/reports/{created['id']}/reject",
            json={"reason": "Duplicate"},
            headers=auth_header(pro_token),
        )

    inbox = (await client.get("/notifications", headers=auth_header(citizen_token))).json()
    assert len(inbox) == 3
    target = inbox[-1]["id"]

    # Someone else's entry looks missing
    resp = await client.patch(f"/notifications/{target}/read", headers=auth_header(other_token))
    assert resp.status_code == 404
    assert resp.json() == {"error": "Notification not found"}

    resp = await client.patch(f"/notifications/{target}/read", headers=auth_header(citizen_token))
    assert resp.status_code == 200
    assert resp.json()["isRead"] is True

    unread = (await client.get("/notifications?unread=true", headers=auth_header(citizen_token))).json()
    assert len(unread) == 2 and target not in [n["id"] for n in unread]

    resp = await client.patch("/notifications/read-all", headers=auth_header(other_token))
    assert resp.json() == {"updated": 0}

    resp = await client.patch("/notifications/read-all", headers=auth_header(citizen_token))
    assert resp.status_code == 200
    assert resp.json() == {"updated": 2}
    unread = (await client.get("/notifications?unread=true", headers=auth_header(citizen_token))).json()
    assert unread == []

    resp = await client.patch("/notifications/999/read", headers=auth_header(citizen_token))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_inbox_requires_login(client):
    resp = await client.get("/notifications")
    assert resp.status_code == 401
