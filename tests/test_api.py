"""End-to-end tests of the HTTP API with an in-memory database."""

import inspect
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from api.app import create_app
from api.deps import get_database
from api.routes import admin as admin_routes
from api.routes import auth as auth_routes
from api.routes import favicons as favicon_routes
from api.routes import team as team_routes
from database.models import TeamInvitation, TrackingRun, VerificationToken
from notifications.email import set_email_sender


@pytest.fixture
def client(db):
    app = create_app()
    app.dependency_overrides[get_database] = lambda: db
    with TestClient(app) as test_client:
        yield test_client


def login(client, emails, email="ada@acme.com", name="Ada"):
    assert client.post("/api/register", json={"name": name, "email": email}).status_code == 200
    assert client.post("/api/auth/login", json={"email": email}).json() == {"success": True}

    link = emails.sent[-1]["url"]
    response = client.get(link, follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "http://testserver/dashboard"
    return response


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "database": True, "pool": {"pool": "StaticPool"}}


def test_protected_routes_require_session(client):
    response = client.get("/api/domains")
    assert response.status_code == 401
    assert "error" in response.json()


def test_register_rejects_duplicates(client):
    body = {"name": "Ada", "email": "ada@acme.com"}
    assert client.post("/api/register", json=body).status_code == 200
    assert client.post("/api/register", json=body).status_code == 409
    assert client.post("/api/auth/check", json={"email": "ADA@acme.com"}).json() == {"registered": True}


def test_login_for_unknown_email(client, emails):
    response = client.post("/api/auth/login", json={"email": "nobody@acme.com"})
    assert response.status_code == 401
    assert response.json()["code"] == "NOT_REGISTERED"
    assert emails.sent == []


def test_magic_link_login_sets_session_cookie(client, emails):
    response = login(client, emails)
    assert response.cookies.get("session_token")

    session = client.get("/api/auth/session").json()["user"]
    assert session["email"] == "ada@acme.com"
    assert session["role"] == "owner"

    link = emails.sent[-1]["url"]
    params = parse_qs(urlparse(link).query)
    assert params["email"] == ["ada@acme.com"]

    client.post("/api/auth/logout")
    client.cookies.clear()
    assert client.get("/api/auth/session").status_code == 401


def test_bearer_token_is_accepted(client, emails):
    token = login(client, emails).cookies.get("session_token")
    client.cookies.clear()

    response = client.get("/api/auth/session", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 200


def test_domain_crud(client, emails):
    login(client, emails)

    created = client.post("/api/domains", json={"name": "Acme", "domainUrl": "https://acme.com"}).json()
    assert created["domainUrl"] == "https://acme.com"

    updated = client.patch(f"/api/domains/{created['id']}", json={"name": "Acme Inc"}).json()
    assert updated["name"] == "Acme Inc"
    assert [d["id"] for d in client.get("/api/domains").json()] == [created["id"]]

    assert client.delete(f"/api/domains/{created['id']}").json() == {"success": True}
    assert client.get(f"/api/domains/{created['id']}").status_code == 404


def test_invalid_domain_is_rejected(client, emails):
    login(client, emails)
    response = client.post("/api/domains", json={"name": "Acme"})
    assert response.status_code == 400
    assert response.json()["error"] == "name and domainUrl are required"


def test_start_run_through_api(client, emails, db):
    login(client, emails)
    domain = client.post("/api/domains", json={"name": "Acme", "domainUrl": "https://acme.com"}).json()
    prompt_set = client.post("/api/prompt-sets", json={"name": "Core", "prompts": ["best anvils"]}).json()
    config = client.post(
        "/api/tracking-configs",
        json={"domainId": domain["id"], "promptSetId": prompt_set["id"], "interval": "weekly"},
    ).json()
    assert config["interval"] == "weekly"
    assert config["nextRunAt"] is not None

    started = client.post("/api/tracking/run", json={"configId": config["id"]}).json()
    assert started["status"] == "pending"

    runs = client.get("/api/tracking/runs").json()["runs"]
    assert runs[0]["id"] == started["runId"]

    with db.session() as session:
        assert session.query(TrackingRun).count() == 1

    usage = client.get("/api/usage").json()
    assert usage["isTrial"] is True
    assert usage["hasAccess"] is True


def test_cron_requires_secret(client):
    assert client.get("/api/cron/run-scheduled").status_code == 401
    assert (
        client.get("/api/cron/run-scheduled", headers={"Authorization": "Bearer wrong"}).status_code
        == 401
    )

    response = client.get("/api/cron/run-scheduled", headers={"Authorization": "Bearer cron-secret"})
    assert response.status_code == 200
    assert response.json() == {"processed": 0, "enqueued": 0, "skipped": 0}


def test_admin_routes_require_super_admin(client, emails):
    login(client, emails)
    assert client.get("/api/admin/stats").status_code == 403


def test_public_magazine_is_empty(client):
    assert client.get("/api/magazine").json() == []
    assert client.get("/api/magazine/missing").status_code == 404


def test_database_backed_handlers_run_in_threadpool():
    for endpoint in (
        auth_routes.request_login_link,
        auth_routes.google_callback,
        team_routes.invite,
        favicon_routes.fetch_favicons,
        admin_routes.translate,
    ):
        assert not inspect.iscoroutinefunction(endpoint), endpoint.__name__


class BrokenMailer:
    async def send_magic_link(self, to, url):
        raise RuntimeError("mail relay down")

    async def send_team_invitation(self, to, inviter_name, team_name, token, role):
        raise RuntimeError("mail relay down")


def test_magic_link_is_stored_before_it_is_mailed(client, db):
    assert client.post("/api/register", json={"name": "Ada", "email": "ada@acme.com"}).status_code == 200
    set_email_sender(BrokenMailer())

    with pytest.raises(RuntimeError):
        client.post("/api/auth/login", json={"email": "ada@acme.com"})

    with db.session() as session:
        assert session.query(VerificationToken).filter(VerificationToken.identifier == "ada@acme.com").count() == 1


def test_invitation_is_mailed_after_it_is_stored(client, emails, db):
    login(client, emails)

    response = client.post("/api/team/invite", json={"email": "bob@acme.com", "role": "member"})
    assert response.status_code == 200
    assert emails.sent[-1]["kind"] == "invitation"
    assert emails.sent[-1]["to"] == "bob@acme.com"

    set_email_sender(BrokenMailer())
    with pytest.raises(RuntimeError):
        client.post("/api/team/invite", json={"email": "cy@acme.com", "role": "member"})

    with db.session() as session:
        emails_invited = {inv.email for inv in session.query(TeamInvitation)}
    assert emails_invited == {"bob@acme.com", "cy@acme.com"}
