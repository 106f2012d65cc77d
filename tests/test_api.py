"""Tests for the Linkbase REST API.

The router runs against a MemoryService wired to the in-memory storage
and fake embedder; the lifespan is not started.
"""

from unittest.mock import patch

import pytest
import structlog
from fastapi.testclient import TestClient

from linkbase import __version__
from linkbase.api import create_app
from linkbase.api.router import set_service

USER = {"X-User-Id": "user_1"}
OTHER_USER = {"X-User-Id": "user_2"}


@pytest.fixture
def client(service):
    set_service(service)
    yield TestClient(create_app())
    set_service(None)


def create(client, name="Dana", facts=(), headers=USER):
    response = client.post(
        "/api/v1/connections",
        json={"name": name, "met_at": "PyCon", "facts": list(facts)},
        headers=headers,
    )
    assert response.status_code == 201
    return response.json()


class TestHealth:
    def test_healthy(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "version": __version__,
            "storage_connected": True,
        }

    def test_request_id_header(self, client):
        response = client.get("/api/v1/health", headers={"X-Request-Id": "req_abc"})
        assert response.headers["X-Request-Id"] == "req_abc"
        assert client.get("/api/v1/health").headers["X-Request-Id"]

    def test_log_context_bound_during_request(self, client, service):
        """Service calls run with the request, user and connection in the log context."""
        created = create(client)
        seen = {}
        real_get = service.get_connection

        async def recording_get(connection_id, user_id):
            seen.update(structlog.contextvars.get_contextvars())
            return await real_get(connection_id, user_id)

        with patch.object(service, "get_connection", side_effect=recording_get):
            response = client.get(
                f"/api/v1/connections/{created['id']}",
                headers={**USER, "X-Request-Id": "req_abc"},
            )

        assert response.status_code == 200
        assert seen == {
            "request_id": "req_abc",
            "method": "GET",
            "path": f"/api/v1/connections/{created['id']}",
            "user_id": "user_1",
            "connection_id": created["id"],
        }

    def test_service_not_initialized(self, client):
        """Endpoints should return 503 before the service is set."""
        set_service(None)
        response = client.get("/api/v1/connections", headers=USER)
        assert response.status_code == 503


class TestConnectionsApi:
    """Tests for connection endpoints."""

    def test_create_and_get(self, client):
        created = create(client, facts=["likes coffee", "works at Acme"])
        assert created["id"].startswith("conn_")
        assert [f["text"] for f in created["facts"]] == ["likes coffee", "works at Acme"]

        response = client.get(f"/api/v1/connections/{created['id']}", headers=USER)
        assert response.status_code == 200
        assert response.json()["name"] == "Dana"

    def test_requires_user_header(self, client):
        response = client.get("/api/v1/connections")
        assert response.status_code == 422

    def test_blank_name_is_400(self, client):
        """Whitespace-only names pass the schema but fail service validation."""
        response = client.post(
            "/api/v1/connections", json={"name": "   ", "met_at": "PyCon"}, headers=USER
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "validation_error"
        assert response.json()["error"]["field"] == "name"

    def test_other_users_connection_is_404(self, client):
        created = create(client)
        response = client.get(f"/api/v1/connections/{created['id']}", headers=OTHER_USER)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "not_found"

    def test_list(self, client):
        create(client, name="Dana")
        create(client, name="Sam")
        create(client, name="Lee", headers=OTHER_USER)

        response = client.get("/api/v1/connections", headers=USER)

        assert response.status_code == 200
        body = response.json()
        assert body["count"] == 2
        assert [c["name"] for c in body["connections"]] == ["Sam", "Dana"]

    def test_update(self, client):
        created = create(client, facts=["likes coffee"])
        response = client.patch(
            f"/api/v1/connections/{created['id']}",
            json={"met_at": "EuroPython", "facts": ["plays chess"]},
            headers=USER,
        )
        assert response.status_code == 200
        body = response.json()
        assert body["met_at"] == "EuroPython"
        assert [f["text"] for f in body["facts"]] == ["plays chess"]

    def test_delete(self, client):
        created = create(client)
        response = client.delete(f"/api/v1/connections/{created['id']}", headers=USER)
        assert response.status_code == 204

        response = client.get(f"/api/v1/connections/{created['id']}", headers=USER)
        assert response.status_code == 404

    def test_storage_error_is_500(self, client, storage):
        storage.fail_on["list_connections"] = OSError("connection refused")
        response = client.get("/api/v1/connections", headers=USER)
        assert response.status_code == 500
        assert response.json() == {
            "error": {"code": "storage_error", "message": "Failed to list connections"}
        }


class TestFactsApi:
    """Tests for fact endpoints."""

    def test_add_facts(self, client):
        created = create(client)
        response = client.post(
            f"/api/v1/connections/{created['id']}/facts",
            json={"texts": ["likes coffee", "plays chess"]},
            headers=USER,
        )
        assert response.status_code == 201
        assert response.json()["count"] == 2

    def test_upsert_facts(self, client):
        created = create(client, facts=["likes coffee", "works at Acme"])
        response = client.put(
            f"/api/v1/connections/{created['id']}/facts",
            json={"texts": ["likes coffee", "plays chess"]},
            headers=USER,
        )
        assert response.status_code == 200
        assert [f["text"] for f in response.json()["facts"]] == ["plays chess", "likes coffee"]

    def test_update_and_delete_fact(self, client):
        created = create(client, facts=["likes coffee"])
        fact_id = created["facts"][0]["id"]
        base = f"/api/v1/connections/{created['id']}/facts/{fact_id}"

        response = client.patch(base, json={"text": "loves coffee"}, headers=USER)
        assert response.status_code == 200
        assert response.json()["text"] == "loves coffee"

        assert client.delete(base, headers=USER).status_code == 204
        assert client.delete(base, headers=USER).status_code == 404

    def test_delete_all_facts(self, client):
        created = create(client, facts=["likes coffee", "plays chess"])
        response = client.delete(f"/api/v1/connections/{created['id']}/facts", headers=USER)
        assert response.json() == {"deleted": 2}

    def test_cannot_touch_other_users_facts(self, client, storage):
        created = create(client, facts=["likes coffee"])
        response = client.delete(f"/api/v1/connections/{created['id']}/facts", headers=OTHER_USER)
        assert response.status_code == 404
        assert len(storage.facts) == 1


class TestSearchApi:
    """Tests for search endpoints."""

    def test_fact_search_pages(self, client):
        """Following next_cursor should visit every matching fact once."""
        create(client, facts=["likes coffee", "loves coffee", "espresso", "plays chess"])

        seen = []
        cursor = None
        while True:
            params = {"query": "likes coffee", "limit": 2}
            if cursor:
                params["cursor"] = cursor
            body = client.get("/api/v1/facts/search", params=params, headers=USER).json()
            seen.extend(f["text"] for f in body["facts"])
            cursor = body["next_cursor"]
            if cursor is None:
                break

        assert seen == ["likes coffee", "loves coffee", "espresso"]

    def test_fact_search_scoped_to_user(self, client):
        create(client, facts=["likes coffee"], headers=OTHER_USER)
        body = client.get(
            "/api/v1/facts/search", params={"query": "likes coffee"}, headers=USER
        ).json()
        assert body == {"facts": [], "next_cursor": None}

    def test_malformed_cursor_is_400(self, client):
        response = client.get(
            "/api/v1/facts/search", params={"query": "coffee", "cursor": "%%%"}, headers=USER
        )
        assert response.status_code == 400
        assert response.json()["error"]["field"] == "cursor"

    def test_threshold_out_of_range_is_422(self, client):
        response = client.get(
            "/api/v1/facts/search", params={"min_similarity": 1.5}, headers=USER
        )
        assert response.status_code == 422

    def test_connection_search_pages(self, client, settings):
        """Connection search pages by offset with the configured page size."""
        for i in range(settings.api_page_size + 1):
            create(client, name=f"Person {i}", facts=["likes coffee"])

        first = client.get(
            "/api/v1/connections/search", params={"query": "espresso"}, headers=USER
        ).json()
        assert len(first["connections"]) == settings.api_page_size
        assert first["next_cursor"] == str(settings.api_page_size)

        second = client.get(
            "/api/v1/connections/search",
            params={"query": "espresso", "cursor": first["next_cursor"]},
            headers=USER,
        ).json()
        assert len(second["connections"]) == 1
        assert second["next_cursor"] is None

    def test_connection_search_largest_page_size(self, client, settings):
        """The largest valid page size still leaves room for the extra row."""
        settings.api_page_size = settings.search.max_limit - 1
        create(client, facts=["likes coffee"])

        response = client.get(
            "/api/v1/connections/search", params={"query": "espresso"}, headers=USER
        )

        assert response.status_code == 200
        assert len(response.json()["connections"]) == 1

    def test_connection_search_blank_query(self, client):
        create(client, facts=["likes coffee"])
        body = client.get("/api/v1/connections/search", headers=USER).json()
        assert body == {"connections": [], "next_cursor": None}
