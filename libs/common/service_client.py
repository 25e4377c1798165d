"""Authenticated HTTP calls from the schedule service to sibling services.

The only outbound call today is domain event delivery to the communications
service. Each call carries a short-lived service-role JWT and the current
request id, so logs on both sides of the hop line up.
"""

from typing import Any

import httpx
from libs.auth.dependencies import _service_role_jwt
from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)

DEFAULT_TIMEOUT_SECONDS = 5.0


def service_headers(calling_service: str) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {_service_role_jwt(calling_service)}",
        "X-Caller-Service": calling_service,
    }
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    return headers


async def internal_post(
    *,
    service_url: str,
    path: str,
    calling_service: str,
    json: Any = None,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> httpx.Response:
    """POST ``json`` to ``service_url + path`` as ``calling_service``.

    Transport failures raise ``httpx.HTTPError`` subclasses; the status code
    is left for the caller to judge.
    """
    url = f"{service_url.rstrip('/')}{path}"
    async with httpx.AsyncClient(timeout=timeout) as client:
        response = await client.post(
            url, headers=service_headers(calling_service), json=json
        )
    logger.debug("POST %s -> %s", url, response.status_code)
    return response
