"""
auth0_client: Thin Auth0 Management API v2 client used by the backup and export tools.

Only the read calls the tools need are implemented: the five paginated list
endpoints and a single-application lookup.
"""

import logging
from typing import Any, Dict, Optional

import requests
import urllib3
from requests.adapters import HTTPAdapter, Retry

logger = logging.getLogger(__name__)

RETRY_STATUS_CODES = [429, 500, 502, 503, 504]


class Auth0APIError(Exception):
    """Non-2xx response from the Management API. The status code is always kept."""

    def __init__(self, status_code: int, message: str, error: str = "",
                 error_code: str = ""):
        self.status_code = status_code
        self.message = message
        self.error = error
        self.error_code = error_code
        label = f"{status_code} {error}".strip()
        super().__init__(f"Auth0 API error {label}: {message}")

    @classmethod
    def from_response(cls, resp: requests.Response) -> "Auth0APIError":
        error = resp.reason or ""
        message = resp.text or ""
        error_code = ""
        try:
            body = resp.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            error = body.get("error", error)
            message = body.get("message", message)
            error_code = body.get("errorCode", "")
        return cls(resp.status_code, message, error=error, error_code=error_code)


def normalize_domain(domain: str) -> str:
    """Strip scheme and trailing slash from a tenant domain."""
    domain = domain.strip()
    for scheme in ("https://", "http://"):
        if domain.startswith(scheme):
            domain = domain[len(scheme):]
    return domain.rstrip("/")


class Auth0Client:
    """HTTP client for the Auth0 Management API (bearer token auth)."""

    def __init__(self, domain: str, token: str, insecure: bool = False,
                 timeout: float = 30.0, retries: int = 3, backoff_factor: float = 0.5):
        self.domain = normalize_domain(domain)
        self.base_url = f"https://{self.domain}/api/v2"
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        })
        # 429 honours Retry-After; the last response is returned instead of raised
        retry_strategy = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUS_CODES,
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        self.session.mount("https://", adapter)
        self.session.mount("http://", adapter)
        self.session.verify = not insecure
        if insecure:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}{path}"
        logger.debug(f"GET {url} params={params}")
        resp = self.session.get(url, params=params, timeout=self.timeout)
        if not resp.ok:
            raise Auth0APIError.from_response(resp)
        return resp.json() if resp.content else None

    def _list(self, path: str, page: int, per_page: int, include_totals: bool) -> Any:
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if include_totals:
            params["include_totals"] = "true"
        return self.get(path, params)

    def list_clients(self, page: int = 0, per_page: int = 100,
                     include_totals: bool = True) -> Any:
        return self._list("/clients", page, per_page, include_totals)

    def list_connections(self, page: int = 0, per_page: int = 100,
                         include_totals: bool = True) -> Any:
        return self._list("/connections", page, per_page, include_totals)

    def list_actions(self, page: int = 0, per_page: int = 100) -> Any:
        # the actions endpoint always returns {actions, total, page, per_page}
        return self._list("/actions/actions", page, per_page, include_totals=False)

    def list_resource_servers(self, page: int = 0, per_page: int = 100,
                              include_totals: bool = True) -> Any:
        return self._list("/resource-servers", page, per_page, include_totals)

    def list_forms(self, page: int = 0, per_page: int = 100,
                   include_totals: bool = True) -> Any:
        return self._list("/forms", page, per_page, include_totals)

    def get_client(self, client_id: str) -> Dict[str, Any]:
        """Fetch a single application record."""
        return self.get(f"/clients/{client_id}")
