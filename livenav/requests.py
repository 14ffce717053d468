"""
Single-attempt JSON requests against the geocoding and routing providers.
Failures surface as exceptions; the engine never retries a provider call.
"""
import asyncio
import logging
import aiohttp

from .const import REQUEST_TIMEOUT

_LOGGER = logging.getLogger(__name__)

# Characters of a non-JSON body kept for errors and logs
ERROR_BODY_LIMIT = 200


class ApiResponseError(Exception):
    """Exception raised when a provider answers with an HTTP error."""
    def __init__(self, status: int, body=None):
        self.status = status
        self.body = body
        super().__init__(f"API Error: HTTP {status}: {body}")


async def make_request(
    method: str,
    url: str,
    headers: dict | None = None,
    params: dict | None = None,
    timeout: float = REQUEST_TIMEOUT,
):
    """
    Make a single HTTP request and return the parsed JSON body.

    Args:
        method: HTTP method (GET or POST)
        url: Target URL for the request
        headers: HTTP headers dictionary (optional)
        params: URL query parameters (optional)
        timeout: Total timeout in seconds

    Returns:
        Parsed JSON response

    Raises:
        asyncio.TimeoutError: If the request times out
        ApiResponseError: If the provider answers with a non-200 status
        ValueError: If response has unexpected content type
        aiohttp.ClientError: For network errors
    """
    method = method.upper()
    if method not in ("GET", "POST"):
        raise ValueError(f"Unsupported HTTP method: {method}")

    headers = headers or {"accept": "application/json"}
    timeout_config = aiohttp.ClientTimeout(total=timeout)

    try:
        async with aiohttp.ClientSession(timeout=timeout_config) as session:
            async with session.request(method, url, headers=headers, params=params) as response:
                return await _process_response(response, url)
    except (asyncio.TimeoutError, TimeoutError):
        _LOGGER.warning("Timeout on %s request to %s", method, url)
        raise


def _is_json(content_type: str) -> bool:
    # geocode.maps.co serves its JSON search results as application/javascript
    return 'json' in content_type or 'javascript' in content_type


async def _error_body(response, content_type: str):
    """Best-effort payload of a failed provider call, kept on ApiResponseError."""
    if 'json' in content_type:
        try:
            return await response.json(content_type=None)
        except ValueError as e:
            _LOGGER.debug("Unreadable JSON body on HTTP %s: %s", response.status, e)
            return None
    return (await response.text())[:ERROR_BODY_LIMIT]


async def _process_response(response, url: str):
    """Decode a provider reply; anything but a 200 JSON body is an error."""
    content_type = response.headers.get('Content-Type', '')

    if response.status != 200:
        body = await _error_body(response, content_type)
        _LOGGER.warning("Provider %s answered HTTP %s: %s", url, response.status, body)
        raise ApiResponseError(response.status, body)

    if not _is_json(content_type):
        preview = (await response.text())[:ERROR_BODY_LIMIT]
        _LOGGER.warning("Provider %s sent %s instead of JSON", url, content_type or "no content type")
        raise ValueError(f"{url} returned {content_type or 'untyped'} content: {preview}")

    return await response.json(content_type=None)
