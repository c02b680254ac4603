import logging
from typing import Any, Callable, Dict, Optional, TypeVar

import requests
from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_incrementing,
)

from cyber_vault.config import get_request_timeout
from cyber_vault.errors import APIError, NetworkError, RequestTimeout

logger = logging.getLogger(__name__)

T = TypeVar('T')

DEFAULT_HEADERS = {
    'User-Agent': 'Cyber-Vault/1.0',
    'Accept': 'application/json',
}


def _send(method: str, url: str, params: Optional[Dict[str, Any]], headers: Optional[Dict[str, str]],
          json_body: Optional[Any], timeout: Optional[float], source: Optional[str]) -> requests.Response:
    merged_headers = dict(DEFAULT_HEADERS)
    if headers:
        merged_headers.update(headers)

    try:
        response = requests.request(
            method,
            url,
            params=params,
            headers=merged_headers,
            json=json_body,
            timeout=timeout or get_request_timeout(),
        )
    except requests.exceptions.Timeout as e:
        logger.error(f"{source or url} request timed out: {str(e)}")
        raise RequestTimeout(source=source)
    except requests.exceptions.RequestException as e:
        logger.error(f"{source or url} request failed: {str(e)}")
        raise NetworkError(f"Network error: {str(e)}", source=source)

    if not 200 <= response.status_code < 300:
        message = f"HTTP {response.status_code}"
        try:
            body = response.json()
            if isinstance(body, dict):
                error = body.get('message') or body.get('error') or body.get('detail')
                if isinstance(error, dict):
                    error = error.get('message')
                if error:
                    message = str(error)
        except ValueError:
            if response.reason:
                message = f"HTTP {response.status_code}: {response.reason}"
        raise APIError(message, status=response.status_code, source=source)

    return response


def fetch_json(url: str, method: str = 'GET', params: Optional[Dict[str, Any]] = None,
               headers: Optional[Dict[str, str]] = None, json_body: Optional[Any] = None,
               timeout: Optional[float] = None, source: Optional[str] = None) -> Any:
    """Send a request and decode the JSON body, mapping failures to APIError"""
    response = _send(method, url, params, headers, json_body, timeout, source)
    try:
        return response.json()
    except ValueError:
        raise APIError("Invalid JSON in response", status=response.status_code,
                       code='INVALID_RESPONSE', source=source)


def fetch_text(url: str, method: str = 'GET', params: Optional[Dict[str, Any]] = None,
               headers: Optional[Dict[str, str]] = None, timeout: Optional[float] = None,
               source: Optional[str] = None) -> str:
    """Send a request and return the raw body text (XML endpoints)"""
    return _send(method, url, params, headers, None, timeout, source).text


def _should_retry(exc: BaseException) -> bool:
    # Client errors will not change on retry; timeouts (408) are transient
    if isinstance(exc, RequestTimeout):
        return True
    if isinstance(exc, APIError):
        return not exc.is_client_error
    return False


def retry_request(fn: Callable[[], T], max_retries: int = 3, delay: float = 1.0) -> T:
    """
    Call `fn` up to `max_retries` times, waiting delay * attempt between tries
    :param fn: Zero-argument callable performing the request
    :param max_retries: Total number of attempts
    :param delay: Base wait in seconds
    """
    retrying = Retrying(
        stop=stop_after_attempt(max_retries),
        wait=wait_incrementing(start=delay, increment=delay),
        retry=retry_if_exception(_should_retry),
        reraise=True,
    )
    return retrying(fn)
