import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from cyber_vault.config import (
    API_CONFIG,
    get_api_key,
    get_cache_ttl,
    get_max_retries,
    get_rate_limit_per_minute,
    get_retry_delay,
)
from cyber_vault.errors import APIError, APIKeyMissing, RateLimitExceeded
from cyber_vault.utils.cache import TTLCache
from cyber_vault.utils.http import fetch_json, fetch_text, retry_request
from cyber_vault.utils.security import RateLimiter

logger = logging.getLogger(__name__)

# Limiter and cache are shared by every client in the process
_shared_limiter = None
_shared_cache = None


def get_shared_limiter():
    global _shared_limiter
    if _shared_limiter is None:
        _shared_limiter = RateLimiter(get_rate_limit_per_minute(), 60)
    return _shared_limiter


def get_shared_cache() -> TTLCache:
    global _shared_cache
    if _shared_cache is None:
        _shared_cache = TTLCache(get_cache_ttl())
    return _shared_cache


def reset_shared_state() -> None:
    """Drop the shared limiter and cache so the next client rebuilds them from the environment"""
    global _shared_limiter, _shared_cache
    _shared_limiter = None
    _shared_cache = None


def make_envelope(source: str, data: Any, error: Optional[str] = None) -> Dict[str, Any]:
    """Wrap one source's search result in the envelope the UI renders"""
    envelope = {
        'source': source,
        'data': data,
        'status': 'error' if error else 'success',
    }
    if error:
        envelope['error'] = error
    return envelope


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse vendor timestamps (ISO strings or epoch seconds) into naive UTC datetimes"""
    if value is None or value == '':
        return None
    try:
        if isinstance(value, (int, float)):
            return datetime.utcfromtimestamp(value)
        text = str(value).strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        parsed = datetime.fromisoformat(text)
    except (ValueError, OverflowError, OSError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def format_relative(value: Any, now: Optional[datetime] = None, default: str = 'Unknown') -> str:
    """Render a timestamp as 'N hours ago' style text"""
    parsed = parse_timestamp(value)
    if parsed is None:
        return default
    now = now or datetime.utcnow()
    hours = int((now - parsed).total_seconds() // 3600)
    if hours < 1:
        return 'Less than 1 hour ago'
    if hours < 24:
        return f"{hours} hours ago"
    return f"{hours // 24} days ago"


class BaseClient:
    """Common plumbing for the vendor clients: key lookup, rate limiting, caching and requests"""

    service = ''
    # Header carrying the key, or query parameter when the vendor wants it in the URL
    auth_header: Optional[str] = None
    auth_param: Optional[str] = None
    requires_key = True

    def __init__(self, api_key: Optional[str] = None, limiter=None, cache: Optional[TTLCache] = None):
        self.config = API_CONFIG[self.service]
        self.name = self.config['name']
        self.base_url = self.config['base_url']
        self.api_key = api_key if api_key is not None else get_api_key(self.service)
        self.limiter = limiter or get_shared_limiter()
        self.cache = cache or get_shared_cache()

        if self.requires_key and not self.api_key:
            logger.warning(f"{self.name} API key not found. Using demo data.")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    def _auth(self, params: Dict[str, Any], headers: Dict[str, str]) -> None:
        if not self.api_key:
            return
        if self.auth_header:
            headers[self.auth_header] = self.api_key
        if self.auth_param:
            params[self.auth_param] = self.api_key

    def _request(self, path: str = '', params: Optional[Dict[str, Any]] = None,
                 headers: Optional[Dict[str, str]] = None, cache_key: Optional[str] = None,
                 method: str = 'GET', json_body: Optional[Any] = None, as_text: bool = False,
                 base_url: Optional[str] = None) -> Any:
        """
        Perform an authenticated request against the vendor API
        :param path: Path appended to the service base URL
        :param base_url: Alternate host for vendors with a fallback endpoint
        :param cache_key: Cache responses under this key when given
        :param as_text: Return the raw body instead of decoded JSON
        """
        if self.requires_key and not self.api_key:
            raise APIKeyMissing(self.name)

        full_key = f"{self.service}:{cache_key}" if cache_key else None
        if full_key:
            cached = self.cache.get(full_key)
            if cached is not None:
                return cached

        identifier = self.api_key or self.service
        if not self.limiter.is_allowed(identifier):
            logger.warning(f"{self.name} rate limit reached, request to {path or '/'} denied")
            raise RateLimitExceeded(source=self.name)

        request_params = dict(params or {})
        request_headers = dict(headers or {})
        self._auth(request_params, request_headers)

        url = f"{base_url or self.base_url}{path}"
        logger.debug(f"{self.name} request: {method} {path or '/'}")
        if as_text:
            send = lambda: fetch_text(url, method=method, params=request_params, headers=request_headers,
                                      source=self.name)
        else:
            send = lambda: fetch_json(url, method=method, params=request_params, headers=request_headers,
                                      json_body=json_body, source=self.name)

        # Only reads are safe to repeat
        if method == 'GET':
            data = retry_request(send, max_retries=get_max_retries(), delay=get_retry_delay())
        else:
            data = send()

        if full_key:
            self.cache.set(full_key, data)
        return data

    def _log_failure(self, action: str, error: Exception) -> None:
        if isinstance(error, APIError):
            logger.error(f"{self.name} {action} failed: {error.message}")
        else:
            logger.error(f"{self.name} {action} failed: {str(error)}")
