"""Outbound HTTP to identity providers, with errors mapped to the core taxonomy."""

from typing import Any

import httpx

from authcore.models.errors import NetworkError, ProtocolError
from authcore.utils.logging import get_logger

logger = get_logger(__name__)

FORM_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/json",
}


def create_http_client(timeout: float, user_agent: str) -> httpx.AsyncClient:
    """Creates the client shared by every component of one service instance."""
    return httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        headers={"User-Agent": user_agent, "Accept": "application/json"},
        follow_redirects=False,
    )


def _describe_error_body(response: httpx.Response) -> tuple[str | None, str | None]:
    """Extracts an OAuth ``error``/``error_description`` pair if the body carries one."""
    try:
        body = response.json()
    except ValueError:
        return None, None
    if not isinstance(body, dict):
        return None, None
    error = body.get("error")
    description = body.get("error_description")
    return (str(error) if error else None, str(description) if description else None)


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """
    Sends one request and checks the status.

    Raises:
        NetworkError: On timeout or connection failure.
        ProtocolError: On a non-2xx response.
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        logger.warning("oauth_http_timeout", method=method, url=url)
        raise NetworkError(f"Timed out calling {url}", {"url": url}) from e
    except httpx.RequestError as e:
        logger.warning("oauth_http_request_failed", method=method, url=url, error=str(e))
        raise NetworkError(f"Could not reach {url}: {e}", {"url": url}) from e

    if response.is_error:
        error, description = _describe_error_body(response)
        message = f"{method} {url} returned HTTP {response.status_code}"
        if error:
            message = f"{message}: {error}" + (f" ({description})" if description else "")
        logger.warning(
            "oauth_http_error_response",
            method=method,
            url=url,
            status_code=response.status_code,
            error=error,
        )
        raise ProtocolError(
            message, {"url": url, "status_code": response.status_code, "error": error}
        )
    return response


async def request_json(
    client: httpx.AsyncClient, method: str, url: str, **kwargs: Any
) -> dict[str, Any]:
    """Like ``send`` but also requires a JSON object body."""
    response = await send(client, method, url, **kwargs)
    try:
        body = response.json()
    except ValueError as e:
        raise ProtocolError(f"{url} did not return JSON", {"url": url}) from e
    if not isinstance(body, dict):
        raise ProtocolError(f"{url} returned JSON that is not an object", {"url": url})
    return body
