"""
Eitje Open API Integration

Fetches workforce-scheduling data (worked shifts, planned shifts, revenue days)
from the Eitje open API for a date range.

Eitje enforces a maximum queryable span per endpoint; shift endpoints accept
at most 7 days per request, which is why backfills are chunked.
"""

import logging
import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

import requests

from config.settings import settings, EitjeConfig
from opsync.utils.retry_logic import retry_with_backoff, RETRIABLE_STATUS_CODES

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EndpointConfig:
    """Static properties of one Eitje endpoint."""

    path: str
    max_days: int
    requires_aggregation: bool = False


ENDPOINT_CONFIG: Dict[str, EndpointConfig] = {
    "time_registration_shifts": EndpointConfig(
        path="time_registration_shifts", max_days=7, requires_aggregation=True
    ),
    "planning_shifts": EndpointConfig(path="planning_shifts", max_days=7),
    "revenue_days": EndpointConfig(path="revenue_days", max_days=90),
}

SUPPORTED_ENDPOINTS = tuple(ENDPOINT_CONFIG.keys())

# Keys Eitje has used to wrap record lists, tried in order
RESPONSE_LIST_KEYS = ("data", "items", "results")


def get_endpoint_config(endpoint: str) -> EndpointConfig:
    try:
        return ENDPOINT_CONFIG[endpoint]
    except KeyError:
        raise ValueError(
            f"Unsupported Eitje endpoint '{endpoint}'. "
            f"Supported: {', '.join(SUPPORTED_ENDPOINTS)}"
        )


class EitjeAPIClient:
    """Client for the Eitje open API."""

    def __init__(self, config: Optional[EitjeConfig] = None):
        self.config = config or settings.eitje

        if not self.config.is_configured:
            raise ValueError(
                "EITJE_PARTNER_USERNAME, EITJE_PARTNER_PASSWORD, EITJE_API_USERNAME "
                "and EITJE_API_PASSWORD are required"
            )

        self.base_url = self.config.base_url.rstrip("/")
        self.timeout = self.config.timeout_seconds

        # Rate limiting: keep consecutive calls apart
        self.last_request_time = 0.0
        self.min_request_interval = 0.2

    def _headers(self, alternative: bool = False) -> Dict[str, str]:
        """Credential headers. Some Eitje environments only accept the lowercase dashed form."""
        if alternative:
            credentials = {
                "partner-username": self.config.partner_username,
                "partner-password": self.config.partner_password,
                "api-username": self.config.api_username,
                "api-password": self.config.api_password,
            }
        else:
            credentials = {
                "Partner-Username": self.config.partner_username,
                "Partner-Password": self.config.partner_password,
                "Api-Username": self.config.api_username,
                "Api-Password": self.config.api_password,
            }
        return {
            **credentials,
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _rate_limit(self):
        """Enforce a minimum interval between Eitje API calls."""
        current_time = time.time()
        time_since_last_request = current_time - self.last_request_time

        if time_since_last_request < self.min_request_interval:
            time.sleep(self.min_request_interval - time_since_last_request)

        self.last_request_time = time.time()

    @retry_with_backoff(max_retries=3, base_delay=2.0)
    def _send(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send one request; transient statuses raise so the decorator retries them."""
        self._rate_limit()

        if method == "POST":
            response = requests.post(url, timeout=self.timeout, **kwargs)
        else:
            response = requests.get(url, timeout=self.timeout, **kwargs)

        if response.status_code in RETRIABLE_STATUS_CODES:
            response.raise_for_status()
        return response

    def fetch_records(
        self, endpoint: str, start_date: date, end_date: date
    ) -> List[Dict[str, Any]]:
        """
        Fetch all records of an endpoint for an inclusive date range.

        Args:
            endpoint: Eitje endpoint name (see SUPPORTED_ENDPOINTS)
            start_date: First day (inclusive)
            end_date: Last day (inclusive)

        Returns:
            List of raw record dicts

        Raises:
            ValueError: Unknown endpoint, inverted range or range over the endpoint limit
            requests.HTTPError: Non-recoverable API error
        """
        endpoint_config = get_endpoint_config(endpoint)

        if start_date > end_date:
            raise ValueError(f"start_date {start_date} is after end_date {end_date}")

        span_days = (end_date - start_date).days + 1
        if span_days > endpoint_config.max_days:
            raise ValueError(
                f"{endpoint} accepts at most {endpoint_config.max_days} days per request, "
                f"got {span_days}"
            )

        url = f"{self.base_url}/{endpoint_config.path}"
        filters = {
            "start_date": start_date.isoformat(),
            "end_date": end_date.isoformat(),
        }
        params = {f"filters[{key}]": value for key, value in filters.items()}

        logger.info(f"Fetching Eitje {endpoint} {start_date}..{end_date}")
        response = self._send("GET", url, headers=self._headers(), params=params)

        if response.status_code == 401:
            logger.warning(f"Eitje rejected credentials for {endpoint}, retrying with alternative headers")
            response = self._send(
                "GET", url, headers=self._headers(alternative=True), params=params
            )

        if response.status_code in (400, 404):
            # Some accounts only accept filters in a JSON body
            logger.info(f"Eitje GET {endpoint} returned {response.status_code}, retrying as POST override")
            headers = {**self._headers(), "X-HTTP-Method-Override": "GET"}
            response = self._send("POST", url, headers=headers, json={"filters": filters})

        response.raise_for_status()

        records = self._extract_records(endpoint, response.json())
        logger.info(f"Fetched {len(records)} {endpoint} records for {start_date}..{end_date}")
        return records

    @staticmethod
    def _extract_records(endpoint: str, payload: Any) -> List[Dict[str, Any]]:
        """Unwrap the record list from the response body."""
        if isinstance(payload, list):
            return payload

        if isinstance(payload, dict):
            for key in RESPONSE_LIST_KEYS + (endpoint,):
                value = payload.get(key)
                if isinstance(value, list):
                    return value

        logger.warning(f"Unexpected Eitje response shape for {endpoint}: {type(payload).__name__}")
        return []
