"""Tests for the Eitje open API client."""

import pytest
from datetime import date
from unittest.mock import MagicMock, patch

import requests

from config.settings import EitjeConfig
from opsync.integrations.eitje import (
    EitjeAPIClient,
    ENDPOINT_CONFIG,
    SUPPORTED_ENDPOINTS,
    get_endpoint_config,
)


def make_response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else []
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    return response


@pytest.fixture
def eitje_config():
    return EitjeConfig(
        partner_username="partner",
        partner_password="partner-secret",
        api_username="integration",
        api_password="integration-secret",
        base_url="https://eitje.test/open_api/",
    )


@pytest.fixture
def client(eitje_config):
    return EitjeAPIClient(config=eitje_config)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("opsync.integrations.eitje.time.sleep"):
        yield


class TestEndpointConfig:
    """Test the static endpoint table."""

    def test_shift_endpoints_limited_to_seven_days(self):
        assert ENDPOINT_CONFIG["time_registration_shifts"].max_days == 7
        assert ENDPOINT_CONFIG["planning_shifts"].max_days == 7
        assert ENDPOINT_CONFIG["time_registration_shifts"].requires_aggregation is True

    def test_unknown_endpoint(self):
        with pytest.raises(ValueError):
            get_endpoint_config("payroll")

    def test_supported_endpoints(self):
        assert set(SUPPORTED_ENDPOINTS) == {"time_registration_shifts", "planning_shifts", "revenue_days"}


class TestEitjeAPIClient:
    """Test request shape and fallbacks."""

    def test_missing_credentials(self):
        with pytest.raises(ValueError):
            EitjeAPIClient(config=EitjeConfig(partner_username="only-one"))

    @patch("opsync.integrations.eitje.requests.get")
    def test_get_with_filters_and_headers(self, mock_get, client):
        mock_get.return_value = make_response(200, [{"id": 1}, {"id": 2}])

        records = client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 6))

        assert records == [{"id": 1}, {"id": 2}]
        args, kwargs = mock_get.call_args
        assert args[0] == "https://eitje.test/open_api/planning_shifts"
        assert kwargs["params"] == {"filters[start_date]": "2024-01-01", "filters[end_date]": "2024-01-06"}
        assert kwargs["headers"]["Partner-Username"] == "partner"
        assert kwargs["headers"]["Api-Password"] == "integration-secret"

    @pytest.mark.parametrize("key", ["data", "items", "results", "planning_shifts"])
    def test_unwraps_record_list(self, client, key):
        with patch("opsync.integrations.eitje.requests.get") as mock_get:
            mock_get.return_value = make_response(200, {key: [{"id": 9}], "meta": {}})

            assert client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 1)) == [{"id": 9}]

    @patch("opsync.integrations.eitje.requests.get")
    def test_unexpected_shape_returns_empty(self, mock_get, client):
        mock_get.return_value = make_response(200, {"message": "ok"})

        assert client.fetch_records("revenue_days", date(2024, 1, 1), date(2024, 1, 31)) == []

    @patch("opsync.integrations.eitje.requests.get")
    def test_401_retries_with_alternative_headers(self, mock_get, client):
        mock_get.side_effect = [make_response(401), make_response(200, [{"id": 1}])]

        records = client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 2))

        assert records == [{"id": 1}]
        retry_headers = mock_get.call_args_list[1][1]["headers"]
        assert retry_headers["partner-username"] == "partner"
        assert "Partner-Username" not in retry_headers

    @patch("opsync.integrations.eitje.requests.post")
    @patch("opsync.integrations.eitje.requests.get")
    def test_400_falls_back_to_post_override(self, mock_get, mock_post, client):
        mock_get.return_value = make_response(400)
        mock_post.return_value = make_response(200, {"data": [{"id": 3}]})

        records = client.fetch_records("time_registration_shifts", date(2024, 1, 1), date(2024, 1, 7))

        assert records == [{"id": 3}]
        kwargs = mock_post.call_args[1]
        assert kwargs["headers"]["X-HTTP-Method-Override"] == "GET"
        assert kwargs["json"] == {"filters": {"start_date": "2024-01-01", "end_date": "2024-01-07"}}

    @patch("opsync.integrations.eitje.requests.get")
    def test_non_retriable_error_raises(self, mock_get, client):
        mock_get.return_value = make_response(403)

        with pytest.raises(requests.exceptions.HTTPError):
            client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 2))
        assert mock_get.call_count == 1

    @patch("opsync.integrations.eitje.requests.get")
    def test_transient_error_retried(self, mock_get, client):
        mock_get.side_effect = [make_response(503), make_response(200, [{"id": 1}])]

        assert client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 2)) == [{"id": 1}]
        assert mock_get.call_count == 2

    @patch("opsync.integrations.eitje.requests.get")
    def test_span_over_limit_rejected_before_request(self, mock_get, client):
        with pytest.raises(ValueError):
            client.fetch_records("planning_shifts", date(2024, 1, 1), date(2024, 1, 8))

        mock_get.assert_not_called()

    @patch("opsync.integrations.eitje.requests.get")
    def test_inverted_range_rejected(self, mock_get, client):
        with pytest.raises(ValueError):
            client.fetch_records("revenue_days", date(2024, 1, 8), date(2024, 1, 1))
