import asyncio
import logging
from datetime import timedelta

from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from main import app
from shortlink_app.database.connection import get_db
from shortlink_app.dependencies import get_link_service
from shortlink_app.exceptions import CodeSpaceExhausted
from shortlink_app.queue.models import AccessEvent
from shortlink_app.services.link_service import LinkService
from shortlink_app.services.short_code_strategies import ShortCodeStrategy
from shortlink_app.services.temporal import utcnow
from tests.conftest import OTHER_OWNER, OWNER, TEST_BCRYPT_ROUNDS

HEADERS = {"X-Owner-Id": OWNER}
OTHER_HEADERS = {"X-Owner-Id": OTHER_OWNER}


def create_link(client: TestClient, **payload):
    payload.setdefault("target_url", "https://www.github.com/")
    response = client.post("/api/v1/links", json=payload, headers=HEADERS)
    assert response.status_code == 201, response.text
    return response.json()


class TestLinks:
    """Link management endpoints"""

    def test_create_link(self, client: TestClient):
        """Test creating a link with a generated code"""
        response = client.post("/api/v1/links", json={"target_url": "https://www.google.com/"}, headers=HEADERS)
        assert response.status_code == 201

        data = response.json()
        assert len(data["short_code"]) == 6
        assert data["short_url"].endswith(f"/{data['short_code']}")
        assert data["target_url"] == "https://www.google.com/"
        assert data["is_active"] is True
        assert data["owner_id"] == OWNER

    def test_create_link_keeps_url_as_typed(self, client: TestClient):
        data = create_link(client, target_url="https://a.example")
        assert data["target_url"] == "https://a.example"

    def test_create_requires_owner(self, client: TestClient):
        response = client.post("/api/v1/links", json={"target_url": "https://www.google.com/"})
        assert response.status_code == 422

    def test_create_invalid_url(self, client: TestClient):
        response = client.post("/api/v1/links", json={"target_url": "not-a-valid-url"}, headers=HEADERS)
        assert response.status_code == 422

    def test_create_invalid_custom_code(self, client: TestClient):
        for code in ("ab", "has space", "x" * 21):
            response = client.post(
                "/api/v1/links",
                json={"target_url": "https://a.example", "short_code": code},
                headers=HEADERS,
            )
            assert response.status_code == 422

    def test_custom_code_conflict(self, client: TestClient):
        create_link(client, short_code="promo1")

        response = client.post(
            "/api/v1/links",
            json={"target_url": "https://b.example", "short_code": "promo1"},
            headers=HEADERS,
        )
        assert response.status_code == 409
        assert response.json()["detail"] == "Short code already exists"

    def test_check_code(self, client: TestClient):
        create_link(client, short_code="promo1")

        assert client.get("/api/v1/links/check/promo1").json() == {"short_code": "promo1", "available": False}
        assert client.get("/api/v1/links/check/free1").json() == {"short_code": "free1", "available": True}

    def test_get_update_delete(self, client: TestClient):
        link = create_link(client, short_code="promo1", expires_at="2030-01-01T00:00:00Z")
        assert link["expires_at"] == "2030-01-01T00:00:00"

        response = client.get(f"/api/v1/links/{link['id']}", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["short_code"] == "promo1"

        response = client.patch(
            f"/api/v1/links/{link['id']}",
            json={"target_url": "https://c.example", "expires_at": None},
            headers=HEADERS,
        )
        assert response.status_code == 200
        assert response.json()["target_url"] == "https://c.example"
        assert response.json()["expires_at"] is None

        assert client.delete(f"/api/v1/links/{link['id']}", headers=HEADERS).status_code == 204
        assert client.get(f"/api/v1/links/{link['id']}", headers=HEADERS).status_code == 404
        assert client.get("/promo1", follow_redirects=False).status_code == 404

    def test_other_owner_forbidden(self, client: TestClient):
        link = create_link(client)

        assert client.get(f"/api/v1/links/{link['id']}", headers=OTHER_HEADERS).status_code == 403
        assert client.delete(f"/api/v1/links/{link['id']}", headers=OTHER_HEADERS).status_code == 403

    def test_list_links(self, client: TestClient):
        for _ in range(3):
            create_link(client)

        response = client.get("/api/v1/links?page=1&limit=2", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert len(data["data"]) == 2

        assert client.get("/api/v1/links", headers=OTHER_HEADERS).json()["total"] == 0


class TestSchedulesAndPasswords:

    def test_schedule_changes_redirect(self, client: TestClient):
        link = create_link(client, short_code="promo1", target_url="https://a.example")
        now = utcnow()

        response = client.post(
            f"/api/v1/links/{link['id']}/schedules",
            json={
                "target_url": "https://s.example",
                "start_time": (now - timedelta(hours=1)).isoformat(),
                "end_time": (now + timedelta(hours=1)).isoformat(),
            },
            headers=HEADERS,
        )
        assert response.status_code == 201

        response = client.get("/promo1", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "https://s.example"

        schedules = client.get(f"/api/v1/links/{link['id']}/schedules", headers=HEADERS).json()
        assert [s["target_url"] for s in schedules] == ["https://s.example"]

        assert client.delete(f"/api/v1/schedules/{schedules[0]['id']}", headers=HEADERS).status_code == 204
        assert client.get("/promo1", follow_redirects=False).headers["location"] == "https://a.example"

    def test_schedule_window_validation(self, client: TestClient):
        link = create_link(client)

        response = client.post(
            f"/api/v1/links/{link['id']}/schedules",
            json={
                "target_url": "https://s.example",
                "start_time": "2025-03-01T14:00:00",
                "end_time": "2025-03-01T12:00:00",
            },
            headers=HEADERS,
        )
        assert response.status_code == 422

    def test_schedule_update_checks_stored_window(self, client: TestClient):
        link = create_link(client)
        schedule = client.post(
            f"/api/v1/links/{link['id']}/schedules",
            json={
                "target_url": "https://s.example",
                "start_time": "2025-03-01T12:00:00",
                "end_time": "2025-03-01T14:00:00",
            },
            headers=HEADERS,
        ).json()

        response = client.patch(
            f"/api/v1/schedules/{schedule['id']}",
            json={"end_time": "2025-03-01T11:00:00"},
            headers=HEADERS,
        )
        assert response.status_code == 400

    def test_password_flow(self, client: TestClient):
        link = create_link(client, short_code="promo1", target_url="https://a.example")

        response = client.post(f"/api/v1/links/{link['id']}/passwords", json={"password": "s3cret"}, headers=HEADERS)
        assert response.status_code == 201
        assert "password_hash" not in response.json()
        assert "password" not in response.json()

        response = client.get("/promo1", follow_redirects=False)
        assert response.status_code == 401
        assert response.json()["password_required"] is True

        response = client.post("/api/v1/s/promo1", json={})
        assert response.status_code == 200
        assert response.json() == {"target_url": None, "password_required": True}

        response = client.post("/api/v1/s/promo1", json={"password": "guess"})
        assert response.status_code == 401

        response = client.post("/api/v1/s/promo1", json={"password": "s3cret"})
        assert response.status_code == 200
        assert response.json() == {"target_url": "https://a.example", "password_required": False}

    def test_remove_password(self, client: TestClient):
        link = create_link(client, short_code="promo1")
        protection = client.post(
            f"/api/v1/links/{link['id']}/passwords", json={"password": "s3cret"}, headers=HEADERS
        ).json()

        assert client.get(f"/api/v1/links/{link['id']}/passwords", headers=HEADERS).json()[0]["id"] == protection["id"]
        assert client.delete(f"/api/v1/passwords/{protection['id']}", headers=HEADERS).status_code == 204
        assert client.get("/promo1", follow_redirects=False).status_code == 302
        assert client.delete(f"/api/v1/passwords/{protection['id']}", headers=HEADERS).status_code == 404


class TestRedirect:

    def test_redirect(self, client: TestClient):
        """Test URL redirection"""
        link = create_link(client, target_url="https://www.github.com/")

        response = client.get(f"/{link['short_code']}", follow_redirects=False)
        assert response.status_code == 302
        assert response.headers["location"] == "https://www.github.com/"

    def test_redirect_nonexistent(self, client: TestClient):
        response = client.get("/nonexistent", follow_redirects=False)
        assert response.status_code == 404

    def test_expired_indistinguishable_from_missing(self, client: TestClient):
        create_link(client, short_code="old1", expires_at="2020-01-01T00:00:00")

        expired = client.get("/old1", follow_redirects=False)
        missing = client.get("/nonexistent", follow_redirects=False)
        assert expired.status_code == missing.status_code == 404
        assert expired.json() == missing.json()

    def test_access_endpoint_without_password(self, client: TestClient):
        create_link(client, short_code="promo1", target_url="https://a.example")

        response = client.post("/api/v1/s/promo1", json={})
        assert response.status_code == 200
        assert response.json() == {"target_url": "https://a.example", "password_required": False}


class TestAnalyticsEndpoints:

    def seed(self, storage, link, count=2):
        events = [
            AccessEvent(
                link_id=link["id"],
                short_code=link["short_code"],
                timestamp=utcnow(),
                ip_address=f"203.0.113.{i}",
                user_agent="Mozilla/5.0 (Windows NT 10.0; Win64; x64)",
                referrer="https://news.example",
                country="Unknown",
                device_type="desktop",
            )
            for i in range(count)
        ]
        asyncio.run(storage.store_entries(events))

    def test_link_analytics(self, client: TestClient, access_storage):
        link = create_link(client)
        self.seed(access_storage, link)

        response = client.get(f"/api/v1/links/{link['id']}/analytics", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["total_access"] == 2
        assert data["unique_ips"] == 2
        assert data["device_stats"]["desktop"] == 2
        assert len(data["access_by_date"]) == 30
        assert data["access_by_date"][-1]["count"] == 2

        assert client.get(f"/api/v1/links/{link['id']}/analytics", headers=OTHER_HEADERS).status_code == 403

    def test_access_logs_masked(self, client: TestClient, access_storage):
        link = create_link(client)
        self.seed(access_storage, link, count=1)

        response = client.get(f"/api/v1/links/{link['id']}/access-logs", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 1
        assert data["data"][0]["ip_address"] == "203.0.113.xxx"

    def test_owner_analytics(self, client: TestClient, access_storage):
        link = create_link(client)
        create_link(client)
        self.seed(access_storage, link, count=3)

        response = client.get("/api/v1/analytics", headers=HEADERS)
        assert response.status_code == 200
        data = response.json()
        assert data["total_shortlinks"] == 2
        assert data["total_access"] == 3
        assert data["top_referrers"] == [{"referrer": "https://news.example", "count": 3}]


class TestService:

    def test_health(self, client: TestClient):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, client: TestClient):
        response = client.get("/")
        assert response.status_code == 200
        assert "version" in response.json()


class ExhaustedStrategy(ShortCodeStrategy):

    def generate(self, exists):
        raise CodeSpaceExhausted()


class UnavailableSession:
    """Session whose every query fails as if the datastore were down"""

    def query(self, *args, **kwargs):
        raise OperationalError("SELECT links", {}, Exception("could not connect to server"))

    def close(self):
        pass


def error_records(caplog):
    return [record for record in caplog.records if record.levelno >= logging.ERROR]


class TestErrorResponses:

    def test_code_space_exhausted_is_503(self, client: TestClient, db_session, caplog):
        app.dependency_overrides[get_link_service] = lambda: LinkService(
            db_session, short_code_strategy=ExhaustedStrategy(), bcrypt_rounds=TEST_BCRYPT_ROUNDS
        )

        with caplog.at_level(logging.INFO):
            response = client.post("/api/v1/links", json={"target_url": "https://a.example"}, headers=HEADERS)

        assert response.status_code == 503
        assert response.json() == {"detail": "Service temporarily unavailable"}
        assert any(record.name == "shortlink_app.api.errors" for record in error_records(caplog))

    def test_datastore_down_is_503(self, client: TestClient, caplog):
        def unavailable_db():
            yield UnavailableSession()

        app.dependency_overrides[get_db] = unavailable_db

        with caplog.at_level(logging.INFO):
            response = client.get("/promo1", follow_redirects=False)

        assert response.status_code == 503
        assert response.json() == {"detail": "Service temporarily unavailable"}
        assert any(record.name == "shortlink_app.api.errors" for record in error_records(caplog))

    def test_expected_outcomes_are_not_logged_as_errors(self, client: TestClient, caplog):
        link = create_link(client, short_code="promo1")
        client.post(f"/api/v1/links/{link['id']}/passwords", json={"password": "s3cret"}, headers=HEADERS)

        with caplog.at_level(logging.DEBUG):
            assert client.get("/nonexistent", follow_redirects=False).status_code == 404
            assert client.post("/api/v1/s/promo1", json={"password": "guess"}).status_code == 401
            assert client.post(
                "/api/v1/links", json={"target_url": "https://b.example", "short_code": "promo1"}, headers=HEADERS
            ).status_code == 409

        assert error_records(caplog) == []
