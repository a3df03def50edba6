"""Shared httpx plumbing for the HTTP-backed sources."""

from typing import Any

import httpx

from ..errors import ProtocolError, TransportError

USER_AGENT = "grid-pulse"


def create_client(timeout: float, verify: bool = True) -> httpx.AsyncClient:
    """Create the HTTP client a source owns for its lifetime."""
    return httpx.AsyncClient(
        timeout=timeout,
        verify=verify,
        headers={"User-Agent": USER_AGENT},
    )


async def send(client: httpx.AsyncClient, method: str, url: str, **kwargs: Any) -> httpx.Response:
    """
    Send a request and enforce a 2xx status.

    Raises:
        TransportError: On connection errors, timeouts or non-2xx responses
    """
    try:
        response = await client.request(method, url, **kwargs)
    except httpx.TimeoutException as e:
        raise TransportError(f"timeout calling {url}: {e}") from e
    except httpx.HTTPError as e:
        raise TransportError(f"error calling {url}: {e}") from e

    if not response.is_success:
        raise TransportError(
            f"status code was not 2xx but {response.status_code} for {url}",
            status_code=response.status_code,
        )
    return response


def parse_json(response: httpx.Response) -> dict[str, Any]:
    """
    Decode a JSON object body.

    Raises:
        ProtocolError: If the body is not a JSON object
    """
    try:
        doc = response.json()
    except ValueError as e:
        raise ProtocolError(f"body is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise ProtocolError("body is not a JSON object")
    return doc


def check_errno(doc: dict[str, Any]) -> None:
    """
    Enforce ``errno == 0`` in a FoxESS style response.

    Raises:
        ProtocolError: If the error code is missing or non-zero
    """
    errno = doc.get("errno")
    if errno != 0:
        raise ProtocolError(f"error code was not 0 but {errno}", errno=errno)
