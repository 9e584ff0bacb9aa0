"""Directory service admin API client."""

import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from .. import __version__
from ..config.config import DirectoryServiceConfig
from .exceptions import (
    DirectoryAPIError,
    DirectoryAuthenticationError,
    DirectoryConflictError,
    DirectoryNotFoundError,
    DirectoryPermissionError,
    DirectoryRateLimitError,
)
from .rate_limiter import RateLimiter

USER_AGENT = f'org-migrate/{__version__}'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def raise_for_status(
    status_code: int,
    headers: Dict[str, str],
    error_data: Optional[dict] = None,
    text: str = '',
) -> None:
    """Raise the exception matching an error status code.

    Args:
        status_code: HTTP status code
        headers: Response headers
        error_data: Decoded JSON error body, if any
        text: Raw response body, used when there is no JSON body

    Raises:
        DirectoryAPIError: For any status code of 400 or above
    """
    if status_code < 400:
        return

    if status_code == 429:
        retry_after = int(headers.get('Retry-After', 60))
        raise DirectoryRateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status_code,
        )

    if status_code == 401:
        raise DirectoryAuthenticationError('Authentication failed', status_code=401)

    if status_code == 403:
        raise DirectoryPermissionError('Permission denied', status_code=403)

    if status_code == 404:
        raise DirectoryNotFoundError('Resource not found', status_code=404)

    if error_data and isinstance(error_data, dict):
        message = error_data.get('message', f'HTTP {status_code}')
    else:
        message = f'HTTP {status_code}: {text}' if text else f'HTTP {status_code}'

    if status_code == 409:
        raise DirectoryConflictError.from_response(f'Conflict: {message}', error_data)

    raise DirectoryAPIError(
        f'API request failed: {message}',
        status_code=status_code,
        response_data=error_data,
    )


class DirectoryClient:
    """Directory service admin API client with authentication."""

    def __init__(self, config: DirectoryServiceConfig):
        """Initialize directory client.

        Args:
            config: Directory service configuration
        """
        self.config = config
        self.base_url = f'{config.url.rstrip("/")}/api/{config.api_version}'
        self.session = requests.Session()
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)

        self.session.headers.update(self._auth_headers())
        self.session.headers.update(
            {'Content-Type': 'application/json', 'User-Agent': USER_AGENT}
        )

        logger.info(f'Initialized directory client for {config.url}')

    def _auth_headers(self) -> Dict[str, str]:
        if self.config.token:
            return {'Authorization': f'Token {self.config.token}'}
        if self.config.oauth_token:
            return {'Authorization': f'Bearer {self.config.oauth_token}'}
        raise DirectoryAuthenticationError('No authentication token provided')

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            DirectoryAPIError: For various API errors
        """
        headers = dict(response.headers)

        if response.status_code >= 400:
            error_data = None
            text = ''
            try:
                error_data = response.json()
            except ValueError:
                text = response.text
            raise_for_status(response.status_code, headers, error_data, text)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    def _request(self, method: str, endpoint: str, **kwargs) -> APIResponse:
        url = self._build_url(endpoint)
        self.rate_limiter.acquire_sync()

        try:
            response = self.session.request(
                method, url, timeout=self.config.timeout, **kwargs
            )
        except requests.RequestException as e:
            logger.error(f'Network error during {method} request: {e}')
            raise DirectoryAPIError(f'Network error: {e}')

        return self._handle_response(response)

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        headers = {'Content-Type': 'application/json', 'User-Agent': USER_AGENT}
        headers.update(self._auth_headers())
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        await self.rate_limiter.acquire()

        async with aiohttp.ClientSession(headers=headers, timeout=timeout) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data
                ) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()

                    if response.status >= 400:
                        try:
                            error_data = json.loads(response_text)
                        except ValueError:
                            error_data = None
                        raise_for_status(
                            response.status, response_headers, error_data, response_text
                        )

                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise DirectoryAPIError(f'Network error: {e}')

    def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> APIResponse:
        """Make GET request."""
        return self._request('GET', endpoint, params=params)

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous GET request."""
        return await self._make_request_async('GET', endpoint, params=params)

    async def put_async(self, endpoint: str, data: Optional[Any] = None) -> APIResponse:
        """Make asynchronous PUT request."""
        return await self._make_request_async('PUT', endpoint, data=data)

    async def patch_async(
        self, endpoint: str, data: Optional[Any] = None
    ) -> APIResponse:
        """Make asynchronous PATCH request."""
        return await self._make_request_async('PATCH', endpoint, data=data)

    async def delete_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make asynchronous DELETE request."""
        return await self._make_request_async('DELETE', endpoint, params=params)

    def test_connection(self) -> bool:
        """Test connection to the directory service.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('/health')
            return response.success
        except Exception as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.info('Directory client session closed')
