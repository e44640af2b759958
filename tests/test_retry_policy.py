"""
Tests for the shared HTTP retry policy

Verifies exponential backoff for 429/5xx/network errors and immediate
failure on business rejections.
"""

import pytest
from unittest.mock import Mock, patch
from requests.exceptions import ConnectionError, HTTPError, Timeout

from infra.http_client import JsonHttpClient


@pytest.fixture
def client():
    return JsonHttpClient("https://api.example.test/", timeout=5.0, max_retries=2, backoff_base=0.5)


def _response(status_code, payload=None):
    response = Mock()
    response.status_code = status_code
    response.text = "error body"
    if status_code >= 400:
        response.raise_for_status.side_effect = HTTPError(f"{status_code}", response=response)
    else:
        response.raise_for_status.return_value = None
    response.json.return_value = payload if payload is not None else {}
    return response


class TestRetryPolicy:
    def test_success_returns_json(self, client):
        with patch('infra.http_client.requests.request', return_value=_response(200, {"ok": True})) as mock_request:
            assert client._req("GET", "/ping") == {"ok": True}

        args, kwargs = mock_request.call_args
        assert args == ("GET", "https://api.example.test/ping")
        assert kwargs["timeout"] == 5.0

    def test_5xx_retried_once_then_succeeds(self, client):
        responses = [_response(503), _response(200, {"ok": True})]
        with patch('infra.http_client.requests.request', side_effect=responses) as mock_request:
            with patch('infra.http_client.time.sleep') as mock_sleep:
                assert client._req("GET", "/ping") == {"ok": True}

        assert mock_request.call_count == 2
        assert mock_sleep.call_count == 1

    def test_429_retried(self, client):
        with patch('infra.http_client.requests.request', side_effect=[_response(429), _response(200, {})]) as mock_request:
            with patch('infra.http_client.time.sleep'):
                client._req("GET", "/ping")
        assert mock_request.call_count == 2

    def test_retries_are_bounded(self, client):
        with patch('infra.http_client.requests.request', return_value=_response(500)) as mock_request:
            with patch('infra.http_client.time.sleep'):
                with pytest.raises(HTTPError):
                    client._req("GET", "/ping")
        assert mock_request.call_count == 2

    def test_4xx_not_retried(self, client):
        with patch('infra.http_client.requests.request', return_value=_response(400)) as mock_request:
            with patch('infra.http_client.time.sleep') as mock_sleep:
                with pytest.raises(HTTPError):
                    client._req("POST", "/swap", body={"x": 1})
        assert mock_request.call_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.parametrize("error", [Timeout("slow"), ConnectionError("reset")])
    def test_network_errors_retried(self, client, error):
        with patch('infra.http_client.requests.request', side_effect=[error, _response(200, {"ok": 1})]) as mock_request:
            with patch('infra.http_client.time.sleep'):
                assert client._req("GET", "/ping") == {"ok": 1}
        assert mock_request.call_count == 2

    def test_backoff_increases_with_jitter_bounds(self, client):
        with patch('infra.http_client.requests.request', return_value=_response(502)):
            with patch('infra.http_client.time.sleep') as mock_sleep:
                with pytest.raises(HTTPError):
                    client._req("GET", "/ping", max_retries=4)

        delays = [call.args[0] for call in mock_sleep.call_args_list]
        assert len(delays) == 3
        # base * 2^attempt + uniform(0, base)
        assert 0.5 <= delays[0] <= 1.0
        assert 1.0 <= delays[1] <= 1.5
        assert 2.0 <= delays[2] <= 2.5

    def test_per_call_override_to_single_attempt(self, client):
        with patch('infra.http_client.requests.request', return_value=_response(500)) as mock_request:
            with pytest.raises(HTTPError):
                client._req("POST", max_retries=1)
        assert mock_request.call_count == 1
