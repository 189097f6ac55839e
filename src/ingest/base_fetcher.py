"""Abstract base class for backend fetchers with retry logic."""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

from src.config.settings import get_retry_config

logger = logging.getLogger(__name__)


class FetchError(Exception):
    """Exception raised when a fetch fails after retries."""
    def __init__(self, source_id: str, message: str, original_error: Optional[Exception] = None):
        self.source_id = source_id
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_id}: {message}")


class NonRetryableFetchError(FetchError):
    """A failure that retrying cannot fix (bad credentials, missing resource)."""
    pass


class BaseFetcher(ABC):
    """Abstract base for all backend fetchers with built-in retry logic."""

    def __init__(self, source_config: Dict[str, Any], retry_config: Optional[Dict[str, Any]] = None):
        self.source_id = source_config['id']
        self.name = source_config.get('name', self.source_id)
        self.config = source_config

        retry = retry_config or get_retry_config()
        self.max_retries = max(1, int(retry['max_retries']))
        self.initial_backoff_seconds = retry['initial_backoff_seconds']
        self.backoff_multiplier = retry['backoff_multiplier']

    @abstractmethod
    def _fetch_impl(self) -> List[Dict[str, Any]]:
        """
        Internal fetch implementation - to be overridden by subclasses.

        Returns:
            List of raw backend records

        Raises:
            Exception on fetch failure
        """
        pass

    def fetch(self) -> Tuple[List[Dict[str, Any]], Optional[str]]:
        """
        Fetch with automatic retries and exponential backoff.

        Returns:
            Tuple of (records, error_message)
            - On success: (records, None)
            - On failure: ([], error_message)

        Raises:
            NonRetryableFetchError: Immediately, without retrying
        """
        last_error = None
        backoff = self.initial_backoff_seconds

        for attempt in range(1, self.max_retries + 1):
            try:
                records = self._fetch_impl()
                return records, None
            except NonRetryableFetchError:
                raise
            except Exception as e:
                last_error = str(e)
                if attempt < self.max_retries:
                    logger.warning(f"Retry {attempt}/{self.max_retries} for {self.source_id} in {backoff}s: {e}")
                    time.sleep(backoff)
                    backoff *= self.backoff_multiplier
                else:
                    logger.error(f"Failed after {self.max_retries} attempts for {self.source_id}: {e}")

        return [], last_error

    def fetch_records(self) -> List[Dict[str, Any]]:
        """Like fetch(), but raises FetchError instead of returning the error."""
        records, error = self.fetch()
        if error is not None:
            raise FetchError(self.source_id, error)
        return records
