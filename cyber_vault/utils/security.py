import re
import time
import threading
from typing import Dict, Callable
from functools import wraps
import ipaddress
import logging

from cyber_vault.errors import RateLimitExceeded

logger = logging.getLogger(__name__)

HASH_PATTERN = re.compile(r'^[a-fA-F0-9]{32,64}$')
DOMAIN_PATTERN = re.compile(r'^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*\.[a-zA-Z]{2,}$')


class RateLimiter:
    def __init__(self, max_calls: int, time_window: int):
        """
        Initialize rate limiter
        :param max_calls: Maximum number of calls allowed in the time window
        :param time_window: Time window in seconds
        """
        self.max_calls = max_calls
        self.time_window = time_window
        self.calls: Dict[str, list] = {}  # timestamps per API key or identifier
        self._lock = threading.Lock()

    def _prune(self, identifier: str, now: float) -> list:
        timestamps = [ts for ts in self.calls.get(identifier, []) if now - ts < self.time_window]
        self.calls[identifier] = timestamps
        return timestamps

    def is_allowed(self, identifier: str) -> bool:
        """
        Check if a request is allowed and record it when it is
        :param identifier: API key or other caller identifier
        :return: True if request is allowed, False otherwise
        """
        with self._lock:
            now = time.time()
            timestamps = self._prune(identifier, now)
            if len(timestamps) >= self.max_calls:
                return False
            timestamps.append(now)
            return True

    def reset(self) -> None:
        with self._lock:
            self.calls.clear()


class MinIntervalLimiter:
    """Allow one request per `min_interval` seconds, sleeping out the remainder"""

    def __init__(self, min_interval: float):
        self.min_interval = min_interval
        self.last_request = 0.0
        self._lock = threading.Lock()

    def wait(self) -> None:
        with self._lock:
            elapsed = time.time() - self.last_request
            if elapsed < self.min_interval:
                time.sleep(self.min_interval - elapsed)
            self.last_request = time.time()


def rate_limit(max_calls: int = 60, time_window: int = 60, key_index: int = 0):
    """
    Decorator for rate limiting calls keyed by one positional argument
    :param max_calls: Maximum number of calls allowed in the time window
    :param time_window: Time window in seconds
    :param key_index: Position of the identifier argument (1 skips `self` on methods)
    """
    limiter = RateLimiter(max_calls, time_window)

    def decorator(func: Callable):
        @wraps(func)
        def wrapper(*args, **kwargs):
            identifier = args[key_index] if len(args) > key_index else kwargs.get('identifier') or kwargs.get('ip')
            if not identifier:
                raise ValueError("No identifier provided for rate limiting")

            if not limiter.is_allowed(str(identifier)):
                logger.warning(f"Rate limit exceeded for {identifier}")
                raise RateLimitExceeded(str(identifier))

            return func(*args, **kwargs)
        wrapper.limiter = limiter
        return wrapper
    return decorator


class InputValidator:
    @staticmethod
    def validate_ip(ip: str) -> bool:
        """
        Validate IP address format (v4 or v6)
        :param ip: IP address to validate
        :return: True if valid, False otherwise
        """
        try:
            ipaddress.ip_address(ip)
            return True
        except ValueError:
            return False

    @staticmethod
    def validate_ipv4(ip: str) -> bool:
        try:
            ipaddress.IPv4Address(ip)
            return True
        except ValueError:
            return False

    @staticmethod
    def validate_domain(domain: str) -> bool:
        """
        Validate domain name format
        :param domain: Domain name to validate
        :return: True if valid, False otherwise
        """
        if not domain or len(domain) > 253:
            return False
        return bool(DOMAIN_PATTERN.match(domain))

    @staticmethod
    def is_hash(value: str) -> bool:
        """MD5, SHA-1 and SHA-256 digests are 32 to 64 hex characters"""
        return bool(HASH_PATTERN.match(value or ''))

    @staticmethod
    def classify_indicator(indicator: str) -> str:
        """Return 'ip', 'hash' or 'domain' for an indicator of compromise"""
        if InputValidator.validate_ip(indicator):
            return 'ip'
        if InputValidator.is_hash(indicator):
            return 'hash'
        return 'domain'

    @staticmethod
    def sanitize_input(input_str: str) -> str:
        """
        Sanitize user input to prevent injection attacks
        :param input_str: Input string to sanitize
        :return: Sanitized string
        """
        return re.sub(r'[<>"\']', '', input_str or '').strip()
