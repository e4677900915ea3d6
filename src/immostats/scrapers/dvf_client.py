"""
DVF API Client

Fetches property transactions (mutations) from the DVF open data API, one
department and year at a time.
"""
from typing import Any, Dict, List, Optional

import requests
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from config.settings import settings
from src.immostats.exceptions import FetchError
from src.immostats.utils.logger import get_logger

logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = {429, 500, 502, 503, 504}


def _is_transient(error: BaseException) -> bool:
    """Connection drops, timeouts, throttling and 5xx answers are worth retrying."""
    if isinstance(error, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(error, requests.HTTPError) and error.response is not None:
        return error.response.status_code in RETRYABLE_STATUS_CODES
    return False


class DVFClient:
    """
    Client for the DVF (Demandes de Valeurs Foncieres) API.

    Each call fetches a single complete page of mutations for one
    department and one year. Failures surface as FetchError carrying the
    partition context; no record filtering happens here.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize the DVF client.

        Args:
            base_url: Override the default API URL (for testing)
            page_size: Records requested per page
            timeout: Request timeout in seconds
            max_retries: Attempts per partition before giving up
            retry_delay: Base delay for exponential backoff in seconds
            session: Preconfigured requests session
        """
        self.base_url = base_url or settings.dvf_api_base_url
        self.page_size = page_size or settings.dvf_page_size
        self.timeout = timeout or settings.dvf_request_timeout
        self.max_retries = max(1, max_retries if max_retries is not None else settings.etl_max_retries)
        self.retry_delay = retry_delay if retry_delay is not None else settings.etl_retry_delay_seconds
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/json",
            "User-Agent": settings.dvf_user_agent,
        })
        logger.info("dvf_client_initialized", base_url=self.base_url, page_size=self.page_size)

    def fetch_partition(self, partition_key: str, period: int) -> List[Dict[str, Any]]:
        """
        Fetch raw mutation records for one department and year.

        Args:
            partition_key: Department code (e.g. "75")
            period: Mutation year (e.g. 2023)

        Returns:
            List of raw mutation dicts (possibly empty)

        Raises:
            FetchError: If the request fails after retries or the body is unusable
        """
        params = {
            "code_departement": partition_key,
            "annee_mutation": period,
            "page": 1,
            "per_page": self.page_size,
        }

        logger.info("fetching_partition", partition=partition_key, period=period)

        try:
            json_data = self._get_json(params)
        except (requests.RequestException, ValueError) as e:
            logger.error(
                "partition_fetch_failed",
                partition=partition_key,
                period=period,
                error=str(e),
                error_type=type(e).__name__
            )
            raise FetchError(partition_key, period, e) from e

        records = self._parse_response(json_data, partition_key, period)
        logger.info("partition_fetched", partition=partition_key, period=period, count=len(records))
        return records

    def _get_json(self, params: Dict[str, Any]) -> Any:
        """
        Perform the GET with retry on transient failures.

        Returns:
            Decoded JSON body
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.retry_delay, max=30),
            retry=retry_if_exception(_is_transient),
            before_sleep=self._log_retry,
            reraise=True,
        )

        for attempt in retrying:
            with attempt:
                response = self.session.get(self.base_url, params=params, timeout=self.timeout)
                response.raise_for_status()
                logger.debug("api_request_successful", status_code=response.status_code)
                return response.json()

    @staticmethod
    def _log_retry(retry_state) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "api_request_retry",
            attempt=retry_state.attempt_number,
            error=str(error) if error else None
        )

    @staticmethod
    def _parse_response(json_data: Any, partition_key: str, period: int) -> List[Dict[str, Any]]:
        """
        Extract mutation records from the API payload.

        A missing or null "resultats" key means the partition has no data.
        """
        if not isinstance(json_data, dict):
            raise FetchError(partition_key, period, ValueError("unexpected response payload"))

        records = json_data.get("resultats")
        if not records:
            logger.info("partition_empty", partition=partition_key, period=period)
            return []
        if not isinstance(records, list):
            raise FetchError(partition_key, period, ValueError("'resultats' is not a list"))

        return [record for record in records if isinstance(record, dict)]
