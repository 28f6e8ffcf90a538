"""HTTP client for upstream quote and FX endpoints.

Retries happen inside the ``requests`` transport adapter only (urllib3
``Retry``), so a caller sees exactly one call and one outcome.  Quote callers
keep ``max_retries`` low: a broadcast tick that stalls on backoff delays every
subscriber, and the next tick retries anyway.
"""

import logging
from typing import Any, Mapping, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin ``requests.Session`` wrapper bound to one base URL."""

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        max_retries: int = 1,
        backoff_factor: float = 0.25,
        retry_statuses: tuple = (429, 500, 502, 503, 504),
        default_headers: Optional[Mapping[str, str]] = None,
    ):
        """
        Args:
            base_url: Base URL for all requests
            timeout: Per-request timeout in seconds
            max_retries: Transport-level retry budget (0 disables retries)
            backoff_factor: urllib3 backoff multiplier between retries
            retry_statuses: HTTP status codes that trigger a retry
            default_headers: Headers sent with every request
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.retry_statuses = retry_statuses
        self.default_headers = {"Accept": "application/json", **dict(default_headers or {})}

        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=self.backoff_factor,
            status_forcelist=list(self.retry_statuses),
            allowed_methods=["GET"],
            raise_on_status=False,
        )
        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def url_for(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def get(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> requests.Response:
        """Make a GET request.

        Raises:
            requests.RequestException: On connection errors, timeouts, or an
                exhausted retry budget.
        """
        merged = dict(self.default_headers)
        merged.update(headers or {})
        url = self.url_for(path)
        logger.debug("GET %s params=%s", url, params)
        return self.session.get(url, params=params, headers=merged, timeout=self.timeout)

    def get_json(
        self,
        path: str,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
    ) -> Any:
        """GET and decode a JSON body.

        Raises:
            requests.HTTPError: Non-2xx response
            requests.RequestException: Transport failure
            ValueError: Body is not valid JSON
        """
        response = self.get(path, params=params, headers=headers)
        response.raise_for_status()
        return response.json()
