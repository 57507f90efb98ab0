"""Unit tests for auth0_client.py."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from auth0_client import RETRY_STATUS_CODES, Auth0APIError, Auth0Client, normalize_domain


def make_response(status_code=200, json_body=None, text="", reason="OK"):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.ok = status_code < 400
    resp.reason = reason
    resp.text = text
    resp.content = text.encode() or (b"{}" if json_body is not None else b"")
    if json_body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = json_body
    return resp


# ===== normalize_domain =====

class TestNormalizeDomain:
    def test_plain(self):
        assert normalize_domain("tenant.eu.auth0.com") == "tenant.eu.auth0.com"

    def test_strips_scheme_and_slash(self):
        assert normalize_domain("https://tenant.eu.auth0.com/") == "tenant.eu.auth0.com"

    def test_strips_whitespace(self):
        assert normalize_domain("  tenant.auth0.com ") == "tenant.auth0.com"


# ===== Auth0Client =====

class TestAuth0ClientInit:
    def test_base_url(self):
        client = Auth0Client("https://tenant.auth0.com/", "TOKEN")
        assert client.base_url == "https://tenant.auth0.com/api/v2"

    def test_bearer_header(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        assert client.session.headers["Authorization"] == "Bearer TOKEN"

    def test_retry_policy_mounted(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN", retries=5)
        retries = client.session.get_adapter("https://tenant.auth0.com").max_retries
        assert retries.total == 5
        assert set(retries.status_forcelist) == set(RETRY_STATUS_CODES)

    def test_insecure_disables_verify(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN", insecure=True)
        assert client.session.verify is False


class TestAuth0ClientGet:
    def test_returns_json(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        with patch.object(client.session, "get",
                          return_value=make_response(json_body=[{"id": 1}])) as get:
            assert client.get("/clients", {"page": 0}) == [{"id": 1}]
        get.assert_called_once_with("https://tenant.auth0.com/api/v2/clients",
                                    params={"page": 0}, timeout=30.0)

    def test_error_keeps_status_code(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        resp = make_response(403, json_body={
            "statusCode": 403, "error": "Forbidden",
            "message": "Insufficient scope, expected any of: read:clients",
            "errorCode": "insufficient_scope",
        }, reason="Forbidden")
        with patch.object(client.session, "get", return_value=resp):
            with pytest.raises(Auth0APIError) as exc_info:
                client.get("/clients")
        err = exc_info.value
        assert err.status_code == 403
        assert err.error_code == "insufficient_scope"
        assert "403" in str(err)
        assert "Insufficient scope" in str(err)

    def test_error_without_json_body(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        resp = make_response(502, text="Bad Gateway", reason="Bad Gateway")
        with patch.object(client.session, "get", return_value=resp):
            with pytest.raises(Auth0APIError) as exc_info:
                client.get("/forms")
        assert exc_info.value.status_code == 502
        assert "Bad Gateway" in str(exc_info.value)


class TestAuth0ClientListing:
    def test_list_clients_params(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        with patch.object(client, "get", return_value=[]) as get:
            client.list_clients(page=2, per_page=50)
        get.assert_called_once_with("/clients", {"page": 2, "per_page": 50,
                                                 "include_totals": "true"})

    def test_list_actions_has_no_include_totals(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        with patch.object(client, "get", return_value={}) as get:
            client.list_actions(page=0, per_page=10)
        get.assert_called_once_with("/actions/actions", {"page": 0, "per_page": 10})

    def test_list_paths(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        with patch.object(client, "get", return_value=[]) as get:
            client.list_connections()
            client.list_resource_servers()
            client.list_forms()
        paths = [c.args[0] for c in get.call_args_list]
        assert paths == ["/connections", "/resource-servers", "/forms"]

    def test_get_client(self):
        client = Auth0Client("tenant.auth0.com", "TOKEN")
        with patch.object(client, "get", return_value={"client_id": "abc"}) as get:
            assert client.get_client("abc") == {"client_id": "abc"}
        get.assert_called_once_with("/clients/abc")
