"""Directory service API exceptions."""

from typing import Any, Optional, Sequence


class DirectoryAPIError(Exception):
    """Base exception for directory service API errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[dict] = None,
    ):
        """Initialize directory API error.

        Args:
            message: Error message
            status_code: HTTP status code
            response_data: Response data from API
        """
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class DirectoryAuthenticationError(DirectoryAPIError):
    """Authentication error with the directory service."""

    pass


class DirectoryRateLimitError(DirectoryAPIError):
    """Rate limit exceeded error."""

    def __init__(self, message: str, retry_after: int = 60, **kwargs):
        """Initialize rate limit error.

        Args:
            message: Error message
            retry_after: Seconds to wait before retry
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


class DirectoryNotFoundError(DirectoryAPIError):
    """Resource not found error."""

    pass


class DirectoryConflictError(DirectoryAPIError):
    """Unique constraint violation reported by the directory service.

    The service names the violated constraint in the error body, e.g.
    ``{"message": "...", "fields": ["slug", "parent_id"], "value": "platform"}``.
    """

    def __init__(
        self,
        message: str,
        fields: Sequence[str] = (),
        value: Optional[Any] = None,
        **kwargs,
    ):
        """Initialize conflict error.

        Args:
            message: Error message
            fields: Fields making up the violated constraint
            value: Conflicting value, when reported
            **kwargs: Additional arguments for base class
        """
        super().__init__(message, **kwargs)
        self.fields = tuple(fields)
        self.value = value

    @classmethod
    def from_response(
        cls, message: str, error_data: Optional[dict]
    ) -> 'DirectoryConflictError':
        """Build the error from a 409 response body."""
        data = error_data if isinstance(error_data, dict) else {}
        fields = data.get('fields') or ()
        if isinstance(fields, str):
            fields = (fields,)
        return cls(
            message,
            fields=fields,
            value=data.get('value'),
            status_code=409,
            response_data=error_data,
        )


class DirectoryPermissionError(DirectoryAPIError):
    """Permission denied error."""

    pass
