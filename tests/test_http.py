from unittest.mock import MagicMock, patch

import pytest
import requests

from cyber_vault.errors import APIError, NetworkError, RequestTimeout
from cyber_vault.utils.http import DEFAULT_HEADERS, fetch_json, fetch_text, retry_request


def test_fetch_json_sends_default_headers_and_timeout(http):
    http.respond('example.com', {'ok': True})

    assert fetch_json('https://example.com/api', params={'q': 'x'}, headers={'key': 'abc'}) == {'ok': True}

    call = http.calls[0]
    assert call['method'] == 'GET'
    assert call['params'] == {'q': 'x'}
    assert call['headers']['User-Agent'] == DEFAULT_HEADERS['User-Agent']
    assert call['headers']['key'] == 'abc'
    assert call['timeout'] == 30


def test_fetch_json_uses_server_error_message(http):
    http.respond('example.com', {'error': 'Invalid API key'}, status_code=401)

    with pytest.raises(APIError) as excinfo:
        fetch_json('https://example.com/api', source='Example')

    assert excinfo.value.status == 401
    assert excinfo.value.message == 'Invalid API key'
    assert excinfo.value.code == 'HTTP_ERROR'
    assert excinfo.value.source == 'Example'


def test_fetch_json_reads_nested_error_message(http):
    http.respond('example.com', {'error': {'message': 'Quota exceeded'}}, status_code=403)

    with pytest.raises(APIError) as excinfo:
        fetch_json('https://example.com/api')
    assert excinfo.value.message == 'Quota exceeded'


def test_fetch_json_non_json_error_body(http):
    http.respond('example.com', status_code=502, text='<html>Bad Gateway</html>')

    with pytest.raises(APIError) as excinfo:
        fetch_json('https://example.com/api')
    assert excinfo.value.status == 502
    assert excinfo.value.message.startswith('HTTP 502')


def test_fetch_json_invalid_json(http):
    http.respond('example.com', text='not json')

    with pytest.raises(APIError) as excinfo:
        fetch_json('https://example.com/api')
    assert excinfo.value.code == 'INVALID_RESPONSE'


def test_timeout_maps_to_request_timeout(http):
    http.fail('example.com', requests.exceptions.Timeout('read timed out'))

    with pytest.raises(RequestTimeout) as excinfo:
        fetch_json('https://example.com/api')
    assert excinfo.value.status == 408


def test_connection_error_maps_to_network_error(http):
    http.fail('example.com', requests.exceptions.ConnectionError('refused'))

    with pytest.raises(NetworkError) as excinfo:
        fetch_json('https://example.com/api')
    assert excinfo.value.code == 'NETWORK_ERROR'
    assert excinfo.value.status == 0


def test_fetch_text_returns_body(http):
    http.respond('yandex', text='<yandexsearch/>')
    assert fetch_text('https://yandex.com/search/xml') == '<yandexsearch/>'


def test_retry_request_retries_server_errors():
    fn = MagicMock(side_effect=[APIError('boom', status=500), NetworkError('down'), 'ok'])
    assert retry_request(fn, max_retries=3, delay=0) == 'ok'
    assert fn.call_count == 3


def test_retry_request_does_not_retry_client_errors():
    fn = MagicMock(side_effect=APIError('not found', status=404))
    with pytest.raises(APIError):
        retry_request(fn, max_retries=3, delay=0)
    assert fn.call_count == 1


def test_retry_request_reraises_last_error():
    fn = MagicMock(side_effect=RequestTimeout())
    with pytest.raises(RequestTimeout):
        retry_request(fn, max_retries=2, delay=0)
    assert fn.call_count == 2


def test_retry_request_waits_linearly():
    fn = MagicMock(side_effect=[NetworkError('down'), NetworkError('down'), 'ok'])
    with patch('tenacity.nap.time.sleep') as mock_sleep:
        assert retry_request(fn, max_retries=3, delay=1.0) == 'ok'
    assert [call.args[0] for call in mock_sleep.call_args_list] == [1.0, 2.0]


def test_retry_request_leaves_programming_errors_alone():
    fn = MagicMock(side_effect=KeyError('matches'))
    with pytest.raises(KeyError):
        retry_request(fn, max_retries=3, delay=0)
    assert fn.call_count == 1
