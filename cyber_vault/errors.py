"""Exception types raised by the API clients."""
from typing import Any, Dict, Optional


class APIError(Exception):
    """Base error for a failed third-party API call"""

    def __init__(
        self,
        message: str,
        status: int = 0,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        source: Optional[str] = None,
    ):
        self.message = message
        self.status = status
        self.code = code or ("HTTP_ERROR" if status else "API_ERROR")
        self.details = details or {}
        self.source = source
        super().__init__(message)

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    def to_dict(self) -> Dict[str, Any]:
        response: Dict[str, Any] = {
            "message": self.message,
            "status": self.status,
            "code": self.code,
        }
        if self.source:
            response["source"] = self.source
        if self.details:
            response["details"] = self.details
        return response


class APIKeyMissing(APIError):
    def __init__(self, service_name: str):
        super().__init__(
            f"{service_name} API key not configured",
            status=401,
            code="API_KEY_MISSING",
            source=service_name,
        )


class RateLimitExceeded(APIError):
    def __init__(self, identifier: str = "", source: Optional[str] = None):
        super().__init__(
            "Rate limit exceeded. Please try again later.",
            status=429,
            code="RATE_LIMITED",
            details={"identifier": identifier} if identifier else None,
            source=source,
        )


class RequestTimeout(APIError):
    def __init__(self, message: str = "Request timed out", source: Optional[str] = None):
        super().__init__(message, status=408, code="TIMEOUT", source=source)


class NetworkError(APIError):
    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, status=0, code="NETWORK_ERROR", source=source)


class InvalidInputError(APIError):
    def __init__(self, field: str, reason: str):
        super().__init__(
            f"Invalid input for '{field}': {reason}",
            status=400,
            code="INVALID_INPUT",
            details={"field": field, "reason": reason},
        )
