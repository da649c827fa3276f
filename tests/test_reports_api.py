import pytest

from participium.permissions import UserRole

from factories import ROME, TURIN, auth_header, data_uri

LIGHTING = ("Public Lighting Department", "Electrical staff member")


def _payload(**overrides):
    payload = {
        "title": "Broken bench",
        "description": "The bench in the park is broken",
        "category": "Public Lighting",
        "location": TURIN,
        "photos": [data_uri("PNG")],
        "isAnonymous": False,
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_metrics_exposed(client):
    resp = await client.get("/metrics")
    assert resp.status_code == 200
    assert "http_requests_total" in resp.text


@pytest.mark.asyncio
async def test_register_login_and_me(client):
    resp = await client.post(
        "/auth/register",
        json={"username": "mario", "password": "supersecret", "firstName": "Mario"},
    )
    assert resp.status_code == 201, resp.text
    assert resp.json()["role"] == "citizen"

    resp = await client.post("/auth/register", json={"username": "mario", "password": "supersecret"})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Username already taken"}

    resp = await client.post("/auth/login", data={"username": "mario", "password": "wrong-password"})
    assert resp.status_code == 401
    assert resp.json() == {"error": "Invalid username or password"}

    resp = await client.post("/auth/login", data={"username": "mario", "password": "supersecret"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    me = await client.get("/auth/me", headers=auth_header(token))
    assert me.status_code == 200
    assert me.json()["username"] == "mario"
    assert me.json()["firstName"] == "Mario"


@pytest.mark.asyncio
async def test_requests_without_token_are_unauthorized(client):
    resp = await client.get("/reports")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Not authenticated"}

    resp = await client.get("/reports", headers=auth_header("not-a-jwt"))
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_report_returns_dto(client, make_user):
    _, token = await make_user("citizen")
    resp = await client.post("/reports", json=_payload(), headers=auth_header(token))
    assert resp.status_code == 201, resp.text
    body = resp.json()
    assert body["status"] == "Pending Approval"
    assert body["location"] == TURIN
    assert body["assigneeId"] is None
    assert body["rejectionReason"] is None
    assert len(body["photos"]) == 1

    photo = await client.get(body["photos"][0])
    assert photo.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"location": ROME}, "Location is outside Turin city boundaries"),
        ({"location": None}, "Location is required"),
        ({"category": "Potholes"}, "Invalid category"),
        ({"photos": []}, "Photos must contain between 1 and 3 images"),
        ({"title": "   "}, "Title is required"),
    ],
)
async def test_create_report_validation_errors(client, make_user, overrides, message):
    _, token = await make_user("citizen")
    resp = await client.post("/reports", json=_payload(**overrides), headers=auth_header(token))
    assert resp.status_code == 400
    assert resp.json() == {"error": message}


@pytest.mark.asyncio
async def test_anonymous_report_hides_reporter(client, make_user):
    citizen, token = await make_user("citizen")
    resp = await client.post("/reports", json=_payload(isAnonymous=True), headers=auth_header(token))
    assert resp.json()["reporterId"] is None

    resp = await client.post("/reports", json=_payload(), headers=auth_header(token))
    assert resp.json()["reporterId"] == citizen.id


@pytest.mark.asyncio
async def test_approve_flow_over_http(client, make_user, make_staff):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    staff, staff_token = await make_staff("sparky", *LIGHTING)

    created = (await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))).json()

    resp = await client.put(f"/reports/{created['id']}/approve", headers=auth_header(citizen_token))
    assert resp.status_code == 403

    resp = await client.put(f"/reports/{created['id']}/approve", headers=auth_header(pro_token))
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["status"] == "Assigned"
    assert body["assigneeId"] == staff.id
    assert body["noOfficerFound"] is False

    resp = await client.put(f"/reports/{created['id']}/approve", headers=auth_header(pro_token))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot approve report with status Assigned"}

    mine = await client.get("/reports/assigned/me", headers=auth_header(staff_token))
    assert [r["id"] for r in mine.json()] == [created["id"]]

    resp = await client.put(
        f"/reports/{created['id']}/status",
        json={"status": "In Progress"},
        headers=auth_header(staff_token),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "In Progress"

    resp = await client.put(
        f"/reports/{created['id']}/status",
        json={"status": "Pending Approval"},
        headers=auth_header(staff_token),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Cannot change status from In Progress to Pending Approval"}


@pytest.mark.asyncio
async def test_approve_with_no_officer_warns(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    created = (await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))).json()

    resp = await client.put(
        f"/reports/{created['id']}/approve",
        json={"category": "Waste"},
        headers=auth_header(pro_token),
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["noOfficerFound"] is True
    assert body["status"] == "Pending Approval"
    assert body["category"] == "Waste"
    assert body["assigneeId"] is None


@pytest.mark.asyncio
async def test_approve_unknown_and_malformed_ids(client, make_user):
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    resp = await client.put("/reports/999/approve", headers=auth_header(pro_token))
    assert resp.status_code == 404
    assert resp.json() == {"error": "Report not found"}

    resp = await client.put("/reports/abc/approve", headers=auth_header(pro_token))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid report ID"}


@pytest.mark.asyncio
async def test_reject_requires_reason(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    created = (await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))).json()

    resp = await client.put(f"/reports/{created['id']}/reject", json={"reason": "  "}, headers=auth_header(pro_token))
    assert resp.status_code == 400
    assert resp.json() == {"error": "Rejection reason is required"}

    resp = await client.put(
        f"/reports/{created['id']}/reject",
        json={"reason": "Outside municipal competence"},
        headers=auth_header(pro_token),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "Rejected"
    assert resp.json()["rejectionReason"] == "Outside municipal competence"


@pytest.mark.asyncio
async def test_list_visibility(client, make_user):
    _, citizen_token = await make_user("citizen")
    _, pro_token = await make_user("pro", role=UserRole.PUBLIC_RELATIONS_OFFICER)
    await client.post("/reports", json=_payload(), headers=auth_header(citizen_token))

    resp = await client.get("/reports", headers=auth_header(citizen_token))
    assert resp.status_code == 200
    assert resp.json() == []

    resp = await client.get("/reports", params={"status": "Pending Approval"}, headers=auth_header(citizen_token))
    assert resp.status_code == 403
    assert resp.json() == {"error": "Only Municipal Public Relations Officers can view pending reports"}

    resp = await client.get("/reports", params={"status": "Pending Approval"}, headers=auth_header(pro_token))
    assert len(resp.json()) == 1

    resp = await client.get("/reports", params={"status": "Whatever"}, headers=auth_header(pro_token))
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_categories_endpoint(client):
    resp = await client.get("/reports/categories")
    assert resp.status_code == 200
    assert "Public Lighting" in resp.json()
    assert len(resp.json()) == 9


@pytest.mark.asyncio
async def test_admin_creates_municipal_users(client, make_user):
    _, admin_token = await make_user("admin", role=UserRole.ADMINISTRATOR)
    _, citizen_token = await make_user("citizen")

    staff_payload = {
        "username": "lamp-fixer",
        "password": "supersecret",
        "role": "technical staff member",
        "department": "Public Lighting Department",
        "departmentRole": "Electrical staff member",
    }
    resp = await client.post("/admin/users", json=staff_payload, headers=auth_header(citizen_token))
    assert resp.status_code == 403

    resp = await client.post("/admin/users", json=staff_payload, headers=auth_header(admin_token))
    assert resp.status_code == 201, resp.text
    assert resp.json()["role"] == "technical staff member"
    assert resp.json()["departmentRoleId"] is not None

    resp = await client.post(
        "/admin/users",
        json={**staff_payload, "username": "ghost", "departmentRole": "Astronaut"},
        headers=auth_header(admin_token),
    )
    assert resp.status_code == 404

    resp = await client.post(
        "/admin/users",
        json={"username": "boss", "password": "supersecret", "role": "mayor"},
        headers=auth_header(admin_token),
    )
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid role 'mayor'"}


@pytest.mark.asyncio
async def test_request_body_validation_is_400(client):
    resp = await client.post("/auth/register", json={"username": "ab", "password": "short"})
    assert resp.status_code == 400
    assert "error" in resp.json()
