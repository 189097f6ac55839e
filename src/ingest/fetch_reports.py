"""Bulk fetcher for inspection reports from the inspection backend.

Endpoints:
    GET {base_url}/api/reports         -> list, or {"data": [...]}
    GET {base_url}/api/reports/<id>    -> one record, or {"data": {...}}

Images are served relative to the same base URL.
"""

import logging
from typing import Any, Dict, List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from src.config.secrets import get_optional_api_token
from src.config.settings import EngineSettings

from .base_fetcher import BaseFetcher, FetchError, NonRetryableFetchError

logger = logging.getLogger(__name__)

# Session-level retry for network transients
_retry = Retry(total=1, allowed_methods=["GET"], backoff_factor=1, status_forcelist=[502, 503, 504])
_session = requests.Session()
_session.mount("https://", HTTPAdapter(max_retries=_retry))
_session.mount("http://", HTTPAdapter(max_retries=_retry))


class AuthenticationError(NonRetryableFetchError):
    """The backend rejected the bearer token (HTTP 401)."""
    pass


def _unwrap(payload: Any) -> Any:
    """Some backend versions wrap responses as {"data": ...}."""
    if isinstance(payload, dict) and "data" in payload:
        return payload["data"]
    return payload


class ReportsFetcher(BaseFetcher):
    """Fetch inspection reports over the backend REST API."""

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        token: Optional[str] = None,
        retry_config: Optional[Dict[str, Any]] = None,
    ):
        self.settings = settings or EngineSettings()
        super().__init__(
            {"id": "reports_api", "name": "Inspection reports API", "base_url": self.settings.api_base_url},
            retry_config=retry_config,
        )
        self.base_url = self.settings.api_base_url.rstrip("/")
        self.token = token if token is not None else get_optional_api_token()

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _get_json(self, url: str) -> Any:
        try:
            response = _session.get(url, headers=self._headers(), timeout=self.settings.request_timeout)
        except requests.RequestException as e:
            raise FetchError(self.source_id, f"request to {url} failed: {e}", e) from e

        if response.status_code == 401:
            raise AuthenticationError(self.source_id, "backend rejected credentials (401)")
        if response.status_code == 404:
            raise NonRetryableFetchError(self.source_id, f"not found: {url}")

        try:
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise FetchError(self.source_id, f"request to {url} failed: {e}", e) from e
        except ValueError as e:
            raise FetchError(self.source_id, f"response from {url} is not JSON", e) from e

    def _fetch_impl(self) -> List[Dict[str, Any]]:
        url = f"{self.base_url}{self.settings.reports_path}"
        records = _unwrap(self._get_json(url))
        if not isinstance(records, list):
            raise FetchError(self.source_id, f"expected a list of reports, got {type(records).__name__}")
        logger.info(f"Fetched {len(records)} report(s) from {url}")
        return records

    def fetch_report(self, report_id: str) -> Dict[str, Any]:
        """Fetch a single report record by id."""
        url = f"{self.base_url}{self.settings.reports_path}/{report_id}"
        record = _unwrap(self._get_json(url))
        if not isinstance(record, dict):
            raise FetchError(self.source_id, f"expected a report object, got {type(record).__name__}")
        return record

    def image_url(self, image_path: Optional[str]) -> Optional[str]:
        """Absolute URL for a report's relative image path."""
        if not image_path:
            return None
        if image_path.startswith(("http://", "https://")):
            return image_path
        if not image_path.startswith("/"):
            image_path = "/" + image_path
        return f"{self.base_url}{image_path}"
