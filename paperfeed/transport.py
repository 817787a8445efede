"""HTTP boundary: turns ``requests`` failures into tagged ``TransportError``s."""

from __future__ import annotations

import logging
from typing import Any, Optional

import requests

from paperfeed.errors import TransportError
from paperfeed.retry import CancelToken

logger = logging.getLogger(__name__)

USER_AGENT = "paperfeed/0.1"
DEFAULT_TIMEOUT = 30.0


def new_session() -> requests.Session:
    session = requests.Session()
    session.headers["User-Agent"] = USER_AGENT
    return session


def send(
    session: requests.Session,
    method: str,
    url: str,
    cancel: Optional[CancelToken] = None,
    timeout: float = DEFAULT_TIMEOUT,
    **kwargs: Any,
) -> requests.Response:
    """Issue one HTTP request and return a 2xx response.

    The request runs through ``CancelToken.call``: firing the token abandons
    it even while it is in flight. It is also bounded by *timeout*.

    Raises:
        RunCancelled: The token fired before or during the request.
        TransportError: Timeout, connection failure, other transport error,
            or a non-2xx status (tagged ``HTTP_STATUS`` with the code).
    """
    cancel = cancel or CancelToken()

    try:
        resp = cancel.call(session.request, method, url, timeout=timeout, **kwargs)
    except requests.Timeout as exc:
        raise TransportError.timeout(f"{method} {url}: timeout: {exc}") from exc
    except requests.ConnectionError as exc:
        raise TransportError.connection(f"{method} {url}: connection failed: {exc}") from exc
    except requests.RequestException as exc:
        raise TransportError(f"{method} {url}: {exc}") from exc

    if not 200 <= resp.status_code < 300:
        logger.debug("HTTP %s %s -> %d", method, url, resp.status_code)
        raise TransportError.http_status(resp.status_code, resp.text[:200])
    return resp
