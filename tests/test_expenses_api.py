"""API tests for the expenses and health blueprints.

Test strategy
-------------
Requests go through the Flask test client; the app's gateway uses the
`http_session` mock from conftest, so the whole path (session cookie →
token store → gateway → transcoder → response) runs except the socket.
"""

import json

import expense_gateway.services.expense_service as expense_svc
from expense_gateway.integrations.concur_gateway import ConcurGateway
from expense_gateway.integrations.destinations import StaticDestinationResolver


class TestGetExpenses:
    def test_returns_transcoded_json(self, client, http_session, auth_response, entries_response):
        http_session.get.side_effect = [auth_response, entries_response]

        res = client.get("/api/v1/expenses")

        assert res.status_code == 200
        assert res.mimetype == "application/json"
        assert res.get_json() == {"Entries": {"Entry": [{"Amount": "10"}, {"Amount": "20"}]}}

    def test_token_obtained_once_per_browser_session(
        self, client, http_session, auth_response, entries_response, fake_response,
    ):
        second = fake_response(200, b"<Entries/>")
        http_session.get.side_effect = [auth_response, entries_response, second]

        assert client.get("/api/v1/expenses").status_code == 200
        assert client.get("/api/v1/expenses").status_code == 200

        urls = [call.args[0] for call in http_session.get.call_args_list]
        assert sum("accesstoken" in u for u in urls) == 1
        assert http_session.get.call_args_list[2].kwargs["headers"]["Authorization"] == "OAuth abc123"

    def test_new_browser_session_obtains_new_token(
        self, app, http_session, fake_response,
    ):
        def _respond(url, **kwargs):
            if "accesstoken" in url:
                return fake_response(200, {"Access_Token": {"Token": "abc123"}})
            return fake_response(200, b"<Entries/>")

        http_session.get.side_effect = _respond

        app.test_client().get("/api/v1/expenses")
        app.test_client().get("/api/v1/expenses")

        urls = [call.args[0] for call in http_session.get.call_args_list]
        assert sum("accesstoken" in u for u in urls) == 2

    def test_token_never_reaches_the_browser(self, client, http_session, auth_response, entries_response):
        http_session.get.side_effect = [auth_response, entries_response]

        res = client.get("/api/v1/expenses")

        cookie = res.headers.get("Set-Cookie", "")
        assert "abc123" not in cookie
        assert "abc123" not in res.get_data(as_text=True)

    def test_response_carries_request_id(self, client, http_session, auth_response, entries_response):
        http_session.get.side_effect = [auth_response, entries_response]

        res = client.get("/api/v1/expenses", headers={"X-Request-ID": "req-1"})

        assert res.headers["X-Request-ID"] == "req-1"
        assert "X-Request-Duration-Ms" in res.headers


class TestGetExpensesErrors:
    def test_missing_destination_returns_plaintext_500(self, app, client):
        original = app.extensions["concur_gateway"]
        app.extensions["concur_gateway"] = ConcurGateway(
            resolver=StaticDestinationResolver({}),
            proxy_selector=original.proxy_selector,
            tenant_context=original.tenant_context,
        )
        try:
            res = client.get("/api/v1/expenses")
        finally:
            app.extensions["concur_gateway"] = original

        assert res.status_code == 500
        assert res.mimetype == "text/plain"
        assert res.headers["X-Error-Code"] == "ERR_TOKEN_CREATION"
        assert "Make sure to have the destination configured" in res.get_data(as_text=True)

    def test_empty_token_returns_invalid_token(self, client, http_session, fake_response):
        http_session.get.return_value = fake_response(200, {"Access_Token": {"Token": ""}})

        res = client.get("/api/v1/expenses")

        assert res.status_code == 500
        assert res.get_data(as_text=True) == "Invalid authentication token."
        assert res.headers["X-Error-Code"] == "ERR_INVALID_TOKEN"
        assert http_session.get.call_count == 1

    def test_upstream_failure_returns_generic_500(self, client, http_session, auth_response, fake_response):
        http_session.get.side_effect = [auth_response, fake_response(502, "Bad Gateway")]

        res = client.get("/api/v1/expenses")

        assert res.status_code == 500
        assert res.headers["X-Error-Code"] == "ERR_UPSTREAM"
        assert "502" not in res.get_data(as_text=True)

    def test_deeply_nested_payload_returns_plaintext_500(
        self, client, http_session, auth_response, fake_response,
    ):
        depth = 3000
        body = "<a>" * depth + "x" + "</a>" * depth
        http_session.get.side_effect = [auth_response, fake_response(200, body)]

        res = client.get("/api/v1/expenses")

        assert res.status_code == 500
        assert res.mimetype == "text/plain"
        assert res.headers["X-Error-Code"] == "ERR_UPSTREAM"

    def test_401_invalidates_session_token(self, client, http_session, auth_response, fake_response):
        http_session.get.side_effect = [
            auth_response,
            fake_response(401, "expired"),
            fake_response(200, {"Access_Token": {"Token": "fresh"}}),
            fake_response(200, b"<Entries/>"),
        ]

        first = client.get("/api/v1/expenses")
        second = client.get("/api/v1/expenses")

        assert first.status_code == 500
        assert first.headers["X-Error-Code"] == "ERR_UPSTREAM_UNAUTHORIZED"
        assert second.status_code == 200
        assert http_session.get.call_args_list[3].kwargs["headers"]["Authorization"] == "OAuth fresh"


class TestClearToken:
    def test_delete_forces_new_token(self, client, http_session, fake_response):
        def _respond(url, **kwargs):
            if "accesstoken" in url:
                return fake_response(200, {"Access_Token": {"Token": "abc123"}})
            return fake_response(200, b"<Entries/>")

        http_session.get.side_effect = _respond

        client.get("/api/v1/expenses")
        assert client.delete("/api/v1/expenses/token").status_code == 204
        client.get("/api/v1/expenses")

        urls = [call.args[0] for call in http_session.get.call_args_list]
        assert sum("accesstoken" in u for u in urls) == 2


class TestHealth:
    def test_ready(self, client):
        res = client.get("/api/v1/health/ready")
        assert res.status_code == 200
        assert res.get_json() == {"status": "ok"}

    def test_live_reports_configuration(self, client):
        res = client.get("/api/v1/health/live")

        body = res.get_json()
        assert res.status_code == 200
        assert body["status"] == "healthy"
        assert body["checks"]["destinations"]["concur-auth"]["status"] == "ok"
        assert body["checks"]["proxies"] == {
            "OnPremise": "http://onprem-proxy.local:20003",
            "Internet": "direct",
        }
        assert body["checks"]["token_store"]["backend"] == "memory"

    def test_live_degraded_when_destination_missing(self, app, client):
        original = app.extensions["concur_gateway"]
        app.extensions["concur_gateway"] = ConcurGateway(
            resolver=StaticDestinationResolver({}),
            proxy_selector=original.proxy_selector,
            tenant_context=original.tenant_context,
        )
        try:
            res = client.get("/api/v1/health/live")
        finally:
            app.extensions["concur_gateway"] = original

        assert res.status_code == 503
        assert res.get_json()["checks"]["destinations"]["concur-api"]["status"] == "error"


class TestErrorHandlers:
    def test_unknown_path_is_json_404(self, client):
        res = client.get("/api/v1/nope")
        assert res.status_code == 404
        assert json.loads(res.data)["error"] == "Not found"

    def test_wrong_method_is_405(self, client):
        assert client.post("/api/v1/expenses").status_code == 405

    def test_unexpected_error_is_json_500_with_code(self, app, client, monkeypatch):
        def _boom(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(expense_svc, "handle", _boom)
        monkeypatch.setitem(app.config, "PROPAGATE_EXCEPTIONS", False)

        res = client.get("/api/v1/expenses")

        assert res.status_code == 500
        assert res.get_json() == {"error": "Internal server error", "code": "ERR_INTERNAL"}
        assert res.headers["X-Error-Code"] == "ERR_INTERNAL"
