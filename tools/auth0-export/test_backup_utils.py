"""Unit tests for backup_utils.py."""

import json
import math
import os
from datetime import datetime, timezone
from unittest.mock import MagicMock, call, patch

import pytest

from auth0_client import Auth0APIError, Auth0Client
from backup_utils import (
    RESOURCE_FETCHERS,
    PageResult,
    create_backup_metadata,
    decode_page,
    describe_api_error,
    fetch_all_actions,
    fetch_all_applications,
    fetch_all_connections,
    fetch_all_forms,
    fetch_all_resource_servers,
    generate_backup_filename,
    generate_summary_filename,
    generate_timestamp,
    paginate_all,
    timestamp_to_iso,
    validate_output_directory,
    write_json_file,
)


def make_page_fetcher(items, report_total):
    calls = []

    def fetch(page, per_page):
        calls.append((page, per_page))
        chunk = items[page * per_page:(page + 1) * per_page]
        return PageResult(chunk, len(items) if report_total else None)

    return fetch, calls


# ===== paginate_all =====

class TestPaginateAll:
    @pytest.mark.parametrize("count,page_size", [
        (0, 1), (1, 1), (5, 2), (6, 2), (7, 10), (100, 100), (250, 100),
    ])
    def test_without_total(self, count, page_size):
        items = list(range(count))
        fetch, calls = make_page_fetcher(items, report_total=False)
        assert paginate_all(fetch, page_size) == items
        expected_calls = math.ceil(count / page_size)
        if count % page_size == 0:
            expected_calls += 1
        assert len(calls) == expected_calls

    @pytest.mark.parametrize("count,page_size", [
        (1, 1), (5, 2), (6, 2), (7, 10), (100, 100), (250, 100),
    ])
    def test_with_total(self, count, page_size):
        items = list(range(count))
        fetch, calls = make_page_fetcher(items, report_total=True)
        assert paginate_all(fetch, page_size) == items
        assert len(calls) == math.ceil(count / page_size)

    def test_pages_requested_in_order(self):
        fetch, calls = make_page_fetcher(list(range(25)), report_total=False)
        paginate_all(fetch, 10)
        assert [page for page, _ in calls] == [0, 1, 2]
        assert all(per_page == 10 for _, per_page in calls)

    def test_stops_on_empty_page_even_if_total_larger(self):
        fetch = MagicMock(side_effect=[PageResult([1, 2], 10), PageResult([], 10)])
        assert paginate_all(fetch, 2) == [1, 2]
        assert fetch.call_count == 2

    def test_errors_propagate_unwrapped(self):
        error = Auth0APIError(500, "boom")
        fetch = MagicMock(side_effect=[PageResult([1, 2], None), error])
        with pytest.raises(Auth0APIError) as exc_info:
            paginate_all(fetch, 2)
        assert exc_info.value is error
        assert fetch.call_count == 2

    def test_invalid_page_size(self):
        with pytest.raises(ValueError):
            paginate_all(MagicMock(), 0)


# ===== decode_page =====

class TestDecodePage:
    def test_bare_array_has_no_total(self):
        assert decode_page([{"id": 1}], "clients") == PageResult([{"id": 1}], None)

    def test_keyed_envelope(self):
        result = decode_page({"clients": [{"id": 1}], "total": 7, "start": 0}, "clients")
        assert result == PageResult([{"id": 1}], 7)

    def test_keyed_envelope_null_items(self):
        assert decode_page({"forms": None, "total": 0}, "forms") == PageResult([], 0)

    def test_unknown_shape_is_empty_page(self):
        assert decode_page({"unexpected": []}, "clients") == PageResult([], None)
        assert decode_page(None, "clients") == PageResult([], None)


# ===== Resource fetchers =====

class TestFetchers:
    def test_applications_follow_total(self):
        client = MagicMock(spec=Auth0Client)
        client.list_clients.side_effect = [
            {"clients": [{"client_id": "a"}, {"client_id": "b"}], "total": 3},
            {"clients": [{"client_id": "c"}], "total": 3},
        ]
        result = fetch_all_applications(client, page_size=2)
        assert [c["client_id"] for c in result] == ["a", "b", "c"]
        assert client.list_clients.call_args_list == [
            call(page=0, per_page=2, include_totals=True),
            call(page=1, per_page=2, include_totals=True),
        ]

    def test_connections_bare_array(self):
        client = MagicMock(spec=Auth0Client)
        client.list_connections.side_effect = [
            [{"name": "db1"}, {"name": "db2"}],
            [{"name": "db3"}],
        ]
        result = fetch_all_connections(client, page_size=2)
        assert len(result) == 3
        assert client.list_connections.call_count == 2

    def test_actions_envelope(self):
        client = MagicMock(spec=Auth0Client)
        client.list_actions.return_value = {"actions": [{"id": "act1"}], "total": 1,
                                            "page": 0, "per_page": 100}
        assert fetch_all_actions(client) == [{"id": "act1"}]
        client.list_actions.assert_called_once_with(page=0, per_page=100)

    def test_resource_servers_envelope(self):
        client = MagicMock(spec=Auth0Client)
        client.list_resource_servers.return_value = {
            "resource_servers": [{"identifier": "https://api"}], "total": 1}
        assert fetch_all_resource_servers(client) == [{"identifier": "https://api"}]

    def test_forms_unknown_shape_yields_nothing(self):
        client = MagicMock(spec=Auth0Client)
        client.list_forms.return_value = {"data": [{"id": "f1"}]}
        assert fetch_all_forms(client) == []

    def test_records_pass_through_unmodified(self):
        record = {"client_id": "a", "custom": {"nested": [1, 2]}, "unknown_field": None}
        client = MagicMock(spec=Auth0Client)
        client.list_clients.return_value = {"clients": [record], "total": 1}
        assert fetch_all_applications(client) == [record]

    def test_registry_covers_all_types(self):
        assert set(RESOURCE_FETCHERS) == {
            "applications", "connections", "actions", "resource_servers", "forms"}


# ===== describe_api_error =====

class TestDescribeAPIError:
    def test_plain_exception(self):
        assert describe_api_error(ValueError("bad")) == "bad"

    def test_keeps_status_code_and_message(self):
        text = describe_api_error(Auth0APIError(403, "Insufficient scope", error="Forbidden"))
        assert "403" in text
        assert "Insufficient scope" in text
        assert "read:clients" in text

    def test_unauthorized_hint(self):
        assert "expired" in describe_api_error(Auth0APIError(401, "Invalid token"))

    def test_rate_limit_hint(self):
        assert "Rate limited" in describe_api_error(Auth0APIError(429, "Too Many Requests"))

    def test_server_error_hint(self):
        assert "server error" in describe_api_error(Auth0APIError(503, "Unavailable"))

    def test_other_status_unchanged(self):
        err = Auth0APIError(400, "Bad request")
        assert describe_api_error(err) == str(err)


# ===== Naming and metadata =====

class TestNaming:
    def test_timestamp_format(self):
        now = datetime(2024, 1, 15, 10, 30, 0, 123456, tzinfo=timezone.utc)
        assert generate_timestamp(now) == "2024-01-15T10-30-00Z"

    def test_timestamp_has_no_colons(self):
        assert ":" not in generate_timestamp()

    def test_timestamp_to_iso(self):
        assert timestamp_to_iso("2024-01-15T10-30-00Z") == "2024-01-15T10:30:00.000Z"

    def test_backup_filename(self):
        assert generate_backup_filename("applications", "2024-01-15T10-30-00Z") == \
            "auth0-backup-applications-2024-01-15T10-30-00Z.json"

    def test_resource_servers_filename_uses_hyphen(self):
        assert generate_backup_filename("resource_servers", "T") == \
            "auth0-backup-resource-servers-T.json"

    def test_summary_filename(self):
        assert generate_summary_filename("2024-01-15T10-30-00Z") == \
            "auth0-backup-summary-2024-01-15T10-30-00Z.json"

    def test_metadata(self):
        meta = create_backup_metadata("2024-01-15T10-30-00Z", "t.auth0.com", "forms", 4,
                                      tool_version="9.9.9")
        assert meta == {
            "backupTimestamp": "2024-01-15T10:30:00.000Z",
            "tenantDomain": "t.auth0.com",
            "resourceType": "forms",
            "totalCount": 4,
            "toolVersion": "9.9.9",
        }


# ===== Filesystem =====

class TestValidateOutputDirectory:
    def test_valid_directory(self, tmp_path):
        result = validate_output_directory(str(tmp_path))
        assert result.valid
        assert result.error is None

    def test_missing_directory(self, tmp_path):
        result = validate_output_directory(str(tmp_path / "missing"))
        assert not result.valid
        assert "does not exist" in result.error

    def test_file_is_not_directory(self, tmp_path):
        path = tmp_path / "file.txt"
        path.write_text("x")
        result = validate_output_directory(str(path))
        assert not result.valid
        assert "not a directory" in result.error

    def test_not_writable(self, tmp_path):
        with patch("backup_utils.os.access", return_value=False):
            result = validate_output_directory(str(tmp_path))
        assert not result.valid
        assert "not writable" in result.error


class TestWriteJSONFile:
    def test_writes_pretty_json(self, tmp_path):
        path = write_json_file(str(tmp_path), "out.json", {"a": [1, 2]})
        assert path == os.path.join(str(tmp_path), "out.json")
        text = (tmp_path / "out.json").read_text()
        assert json.loads(text) == {"a": [1, 2]}
        assert '\n  "a": [' in text

    def test_no_temp_file_left(self, tmp_path):
        write_json_file(str(tmp_path), "out.json", {})
        assert os.listdir(tmp_path) == ["out.json"]

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(OSError):
            write_json_file(str(tmp_path / "nope"), "out.json", {})
