"""
backup_utils: Building blocks for the tenant backup.

Pagination, per-resource fetchers, output directory checks, file naming and
JSON snapshot writing. The orchestration lives in auth0_backup.py.
"""

import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, NamedTuple, Optional

from auth0_client import Auth0APIError, Auth0Client

logger = logging.getLogger(__name__)

TOOL_VERSION = "0.2.0"
BACKUP_FILE_PREFIX = "auth0-backup"
DEFAULT_PAGE_SIZE = 100


# --- Pagination ---

class PageResult(NamedTuple):
    """One page of a listing. ``total`` is None when the endpoint did not report it."""
    items: List[Any]
    total: Optional[int] = None


def paginate_all(fetch_page: Callable[[int, int], PageResult],
                 page_size: int = DEFAULT_PAGE_SIZE) -> List[Any]:
    """Walk pages 0, 1, 2, ... until the listing is exhausted.

    Stops on an empty page, once ``total`` items were collected, or (when no
    total is known) after the first page shorter than ``page_size``.
    Errors raised by ``fetch_page`` propagate unchanged.
    """
    if page_size < 1:
        raise ValueError(f"page_size must be at least 1, got {page_size}")

    items: List[Any] = []
    page = 0
    while True:
        logger.debug(f"Fetching page {page + 1}...")
        result = fetch_page(page, page_size)
        if not result.items:
            break
        items.extend(result.items)
        page += 1
        if result.total is not None:
            if len(items) >= result.total:
                break
        elif len(result.items) < page_size:
            break

    logger.debug(f"Fetched {len(items)} total resources")
    return items


def decode_page(response: Any, key: str) -> PageResult:
    """Normalize a listing response envelope into a PageResult.

    Listings come back either as a bare array or as ``{key: [...], total: N}``.
    Any other shape is logged and treated as an empty page.
    """
    if isinstance(response, list):
        return PageResult(response, None)
    if isinstance(response, dict) and key in response:
        total = response.get("total")
        return PageResult(response[key] or [], total if isinstance(total, int) else None)
    logger.warning(f"Unexpected response shape while listing '{key}': {type(response).__name__}")
    return PageResult([], None)


# --- Resource Fetchers ---

def fetch_all_applications(client: Auth0Client, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
    return paginate_all(
        lambda page, per_page: decode_page(
            client.list_clients(page=page, per_page=per_page, include_totals=True), "clients"),
        page_size,
    )


def fetch_all_connections(client: Auth0Client, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
    return paginate_all(
        lambda page, per_page: decode_page(
            client.list_connections(page=page, per_page=per_page, include_totals=True), "connections"),
        page_size,
    )


def fetch_all_actions(client: Auth0Client, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
    return paginate_all(
        lambda page, per_page: decode_page(
            client.list_actions(page=page, per_page=per_page), "actions"),
        page_size,
    )


def fetch_all_resource_servers(client: Auth0Client, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
    return paginate_all(
        lambda page, per_page: decode_page(
            client.list_resource_servers(page=page, per_page=per_page, include_totals=True),
            "resource_servers"),
        page_size,
    )


def fetch_all_forms(client: Auth0Client, page_size: int = DEFAULT_PAGE_SIZE) -> List[Dict]:
    return paginate_all(
        lambda page, per_page: decode_page(
            client.list_forms(page=page, per_page=per_page, include_totals=True), "forms"),
        page_size,
    )


RESOURCE_FETCHERS: Dict[str, Callable[..., List[Dict]]] = {
    "applications":     fetch_all_applications,
    "connections":      fetch_all_connections,
    "actions":          fetch_all_actions,
    "resource_servers": fetch_all_resource_servers,
    "forms":            fetch_all_forms,
}

REQUIRED_SCOPES = {
    "applications":     "read:clients",
    "connections":      "read:connections",
    "actions":          "read:actions",
    "resource_servers": "read:resource_servers",
    "forms":            "read:forms",
}


# --- Error descriptions ---

def describe_api_error(exc: Exception) -> str:
    """Return the error text, with a remediation hint for well-known API status codes."""
    message = str(exc) or exc.__class__.__name__
    if not isinstance(exc, Auth0APIError):
        return message

    code = exc.status_code
    if code == 401:
        hint = "Unauthorized. The token might be expired or invalid; obtain a new Management API token."
    elif code == 403:
        scopes = ", ".join(REQUIRED_SCOPES.values())
        hint = f"Forbidden. The token might not have the required scopes: {scopes}."
    elif code == 404:
        hint = "Not found. Check the tenant domain and resource identifiers."
    elif code == 429:
        hint = "Rate limited. Too many requests were made to the Auth0 API; try again later."
    elif code >= 500:
        hint = "Auth0 server error. The Auth0 API might be experiencing issues; try again later."
    else:
        return message
    return f"{message} ({hint})"


# --- Naming and metadata ---

def generate_timestamp(now: Optional[datetime] = None) -> str:
    """ISO-8601 UTC instant safe for file names, e.g. 2024-01-15T10-30-00Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H-%M-%SZ")


def timestamp_to_iso(timestamp: str) -> str:
    """Convert a file-name timestamp back to an ISO-8601 instant."""
    parsed = datetime.strptime(timestamp, "%Y-%m-%dT%H-%M-%SZ")
    return parsed.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def isoformat_utc(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def generate_backup_filename(resource_type: str, timestamp: str) -> str:
    return f"{BACKUP_FILE_PREFIX}-{resource_type.replace('_', '-')}-{timestamp}.json"


def generate_summary_filename(timestamp: str) -> str:
    return f"{BACKUP_FILE_PREFIX}-summary-{timestamp}.json"


def create_backup_metadata(timestamp: str, domain: str, resource_type: str, count: int,
                           tool_version: str = TOOL_VERSION) -> Dict[str, Any]:
    return {
        "backupTimestamp": timestamp_to_iso(timestamp),
        "tenantDomain": domain,
        "resourceType": resource_type,
        "totalCount": count,
        "toolVersion": tool_version,
    }


# --- Filesystem ---

class DirectoryValidation(NamedTuple):
    valid: bool
    error: Optional[str] = None


def validate_output_directory(path: str) -> DirectoryValidation:
    """Check that ``path`` exists, is a directory and is writable."""
    if not os.path.exists(path):
        return DirectoryValidation(False, f"Directory '{path}' does not exist")
    if not os.path.isdir(path):
        return DirectoryValidation(False, f"Path '{path}' is not a directory")
    if not os.access(path, os.W_OK):
        return DirectoryValidation(False, f"Directory '{path}' is not writable")
    return DirectoryValidation(True)


def write_json_file(output_dir: str, filename: str, data: Any) -> str:
    """Write pretty-printed JSON via a temp file and rename it into place."""
    filepath = os.path.join(output_dir, filename)
    tmp_path = f"{filepath}.tmp"
    try:
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        os.replace(tmp_path, filepath)
    except OSError:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise
    logger.info(f"Backup file written: {filepath}")
    return filepath
