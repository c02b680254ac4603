from .security import RateLimiter, MinIntervalLimiter, InputValidator, rate_limit
from .cache import TTLCache

__all__ = ['RateLimiter', 'MinIntervalLimiter', 'InputValidator', 'rate_limit', 'TTLCache']
