"""
Tests for Prometheus client module
"""
import pytest
from unittest.mock import patch
import requests

from metrics.prometheus_client import (
    PrometheusError,
    PrometheusConnectionError,
    PrometheusQueryError,
    extract_value,
    parse_matrix_values,
    query_instant,
    query_range,
    values_by_label,
)


class TestPrometheusError:
    """Tests for PrometheusError exception classes"""

    def test_prometheus_connection_error_inherits(self):
        """PrometheusConnectionError should inherit from PrometheusError"""
        assert issubclass(PrometheusConnectionError, PrometheusError)

    def test_prometheus_query_error_inherits(self):
        """PrometheusQueryError should inherit from PrometheusError"""
        assert issubclass(PrometheusQueryError, PrometheusError)


class TestQueryInstant:
    """Tests for query_instant function"""

    @patch('metrics.prometheus_client.requests.get')
    def test_successful_query(self, mock_get, mock_prometheus_response):
        """Should return results on successful query"""
        mock_get.return_value.status_code = 200
        mock_get.return_value.json.return_value = mock_prometheus_response

        result = query_instant('up')

        assert len(result) == 1
        assert result[0]['metric']['namespace'] == 'shop'

    @patch('metrics.prometheus_client.requests.get')
    def test_base_url_override(self, mock_get, mock_prometheus_response):
        mock_get.return_value.status_code = 200
        mock_get.return_value.json.return_value = mock_prometheus_response

        query_instant('up', base_url='http://prom.example:9090/')

        assert mock_get.call_args[0][0] == 'http://prom.example:9090/api/v1/query'

    @patch('metrics.prometheus_client.requests.get')
    def test_query_failure_raises_error(self, mock_get):
        """Should raise PrometheusQueryError on non-200 response"""
        mock_get.return_value.status_code = 400
        mock_get.return_value.text = "Bad Request"

        with pytest.raises(PrometheusQueryError):
            query_instant('invalid{query')

    @patch('metrics.prometheus_client.requests.get')
    def test_error_status_raises_error(self, mock_get):
        mock_get.return_value.status_code = 200
        mock_get.return_value.json.return_value = {"status": "error", "error": "bad"}

        with pytest.raises(PrometheusQueryError):
            query_instant('up')
        assert mock_get.call_count == 1

    @patch('metrics.prometheus_client.requests.get')
    @patch('metrics.prometheus_client.time.sleep')
    def test_connection_error_retries(self, mock_sleep, mock_get):
        """Should retry on connection errors with backoff"""
        mock_get.side_effect = requests.exceptions.ConnectionError("Connection refused")

        with pytest.raises(PrometheusConnectionError):
            query_instant('up')

        assert mock_get.call_count == 3
        assert mock_sleep.call_count == 3

    @patch('metrics.prometheus_client.requests.get')
    @patch('metrics.prometheus_client.time.sleep')
    def test_recovers_after_transient_failure(self, mock_sleep, mock_get, mock_prometheus_response):
        ok = mock_get.return_value
        ok.status_code = 200
        ok.json.return_value = mock_prometheus_response
        mock_get.side_effect = [requests.exceptions.Timeout("slow"), ok]

        assert len(query_instant('up')) == 1
        assert mock_sleep.call_count == 1


class TestQueryRange:
    """Tests for query_range function"""

    @patch('metrics.prometheus_client.requests.get')
    def test_query_includes_time_params(self, mock_get, mock_prometheus_response):
        """Should include start, end, and step params"""
        mock_get.return_value.status_code = 200
        mock_get.return_value.json.return_value = mock_prometheus_response

        query_range('up', end_ts=1000000.0, window_seconds=86400)

        params = mock_get.call_args[1]['params']
        assert params['step'] == '1d'
        assert float(params['end']) == 1000000.0
        assert float(params['start']) == 1000000.0 - 86400


class TestParsing:

    def test_parse_matrix_values_skips_bad_samples(self, mock_prometheus_response):
        matrix = mock_prometheus_response['data']['result'][0]
        assert parse_matrix_values(matrix) == [(1704355200.0, 40.0), (1704441600.0, 42.0)]
        assert parse_matrix_values({"values": [[1, "x"], [2, "3"]]}) == [(2.0, 3.0)]

    def test_extract_value(self):
        assert extract_value([{"value": [0, "1.5"]}]) == 1.5
        assert extract_value([], default=0.0) == 0.0
        assert extract_value([{"value": [0, "NaNx"]}], default=None) is None

    def test_values_by_label(self):
        result = [
            {"metric": {"pod": "web-1"}, "value": [0, "0.2"]},
            {"metric": {"pod": "web-2"}, "value": [0, "0.3"]},
            {"metric": {}, "value": [0, "9"]},
        ]
        assert values_by_label(result, "pod") == {"web-1": 0.2, "web-2": 0.3}
