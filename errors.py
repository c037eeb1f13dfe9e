"""
Error taxonomy for the explorer API gateway
Every failure surfaced to a client carries one of these tags
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorTag(Enum):
    """Aggregation error classification"""

    MISSING_REQUIRED_PARAM = "missing-required-param"
    INVALID_PARAM_FORMAT = "invalid-param-format"
    OVER_LIMIT = "over-limit"
    UPSTREAM_UNREACHABLE = "upstream-unreachable"
    UPSTREAM_DECODE_FAILURE = "upstream-decode-failure"


HTTP_STATUS = {
    ErrorTag.MISSING_REQUIRED_PARAM: 400,
    ErrorTag.INVALID_PARAM_FORMAT: 400,
    ErrorTag.OVER_LIMIT: 400,
    ErrorTag.UPSTREAM_UNREACHABLE: 502,
    ErrorTag.UPSTREAM_DECODE_FAILURE: 502,
}


class AggregationError(Exception):
    """Base class for every error raised by the gateway"""

    tag: ErrorTag = ErrorTag.UPSTREAM_UNREACHABLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def http_status(self) -> int:
        return HTTP_STATUS[self.tag]

    @property
    def is_client_error(self) -> bool:
        return self.http_status < 500

    def to_dict(self) -> Dict[str, Any]:
        return {"error": {"code": self.tag.value, "message": self.message}}


class MissingParamError(AggregationError):
    tag = ErrorTag.MISSING_REQUIRED_PARAM


class InvalidParamError(AggregationError):
    tag = ErrorTag.INVALID_PARAM_FORMAT


class OverLimitError(AggregationError):
    tag = ErrorTag.OVER_LIMIT


class UpstreamError(AggregationError):
    """Failure talking to an upstream service"""

    def __init__(self, message: str, upstream: str, url: Optional[str] = None):
        super().__init__(message)
        self.upstream = upstream
        self.url = url


class UpstreamUnreachableError(UpstreamError):
    """Transport failure, timeout or non-2xx response"""

    tag = ErrorTag.UPSTREAM_UNREACHABLE

    def __init__(
        self,
        message: str,
        upstream: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, upstream, url)
        self.status_code = status_code


class UpstreamDecodeError(UpstreamError):
    """Response body did not match the expected shape"""

    tag = ErrorTag.UPSTREAM_DECODE_FAILURE
