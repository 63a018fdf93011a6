"""Shared HTTP helpers used by the registry client and the mirror builder.

Encapsulates retry, backoff and error translation so callers only ever see
parsed JSON, ``None`` for a 404, or a ``RegistryUnavailable`` exception.
This module is dependency-light and can be imported from registry/* and
mirror/* without cycles.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import time
from typing import Any, Callable, Dict, Optional

import requests

from constants import Constants
from common.errors import RegistryUnavailable
from common.logging_utils import extra_context, is_debug_enabled, safe_url, Timer

logger = logging.getLogger(__name__)

HEADERS_JSON = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "User-Agent": Constants.USER_AGENT,
}


def backoff_delay(attempt: int, base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC) -> float:
    """Delay before retry number ``attempt`` (0-based): base, 2*base, 4*base..."""
    return base_delay * (2 ** attempt)


def robust_request(
    method: str,
    url: str,
    *,
    context: str,
    retries: int = Constants.HTTP_RETRY_MAX,
    base_delay: float = Constants.HTTP_RETRY_BASE_DELAY_SEC,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: Any,
) -> requests.Response:
    """Perform a request with bounded exponential backoff.

    Timeouts, connection errors and retryable status codes (429/5xx) are
    retried up to ``retries`` attempts in total. Other responses, including
    404, are returned to the caller untouched.

    Raises:
        RegistryUnavailable: when every attempt failed.
    """
    safe_target = safe_url(url)
    last_error = "no attempt made"
    last_status: Optional[int] = None
    kwargs.setdefault("timeout", Constants.REQUEST_TIMEOUT)

    for attempt in range(retries):
        if attempt:
            sleep(backoff_delay(attempt - 1, base_delay))
        with Timer() as t:
            try:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="http_client",
                            action=method,
                            target=safe_target,
                            context=context,
                            attempt=attempt + 1,
                        ),
                    )
                response = requests.request(method, url, **kwargs)
            except requests.Timeout:
                last_error = "timeout"
                last_status = None
                logger.warning(
                    "%s request timed out (attempt %d/%d)", context, attempt + 1, retries
                )
                continue
            except requests.RequestException as exc:  # includes ConnectionError
                last_error = str(exc)
                last_status = None
                logger.warning(
                    "%s connection error (attempt %d/%d): %s", context, attempt + 1, retries, exc
                )
                continue

        if response.status_code in Constants.RETRYABLE_STATUS:
            last_error = f"HTTP {response.status_code}"
            last_status = response.status_code
            logger.warning(
                "%s returned HTTP %s (attempt %d/%d)",
                context,
                response.status_code,
                attempt + 1,
                retries,
            )
            continue

        if is_debug_enabled(logger):
            logger.debug(
                "HTTP response",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    action=method,
                    outcome="success" if response.status_code < 400 else "handled_non_2xx",
                    status_code=response.status_code,
                    duration_ms=t.duration_ms(),
                    target=safe_target,
                    context=context,
                ),
            )
        return response

    logger.error("%s request failed after %d attempts: %s", context, retries, last_error)
    raise RegistryUnavailable(safe_target, last_error, attempts=retries, status_code=last_status)


def _decode_json(response: requests.Response, url: str, context: str) -> Optional[Any]:
    if response.status_code == 404:
        if is_debug_enabled(logger):
            logger.debug(
                "HTTP 404 treated as empty result",
                extra=extra_context(
                    event="http_response",
                    component="http_client",
                    outcome="not_found",
                    status_code=404,
                    target=safe_url(url),
                ),
            )
        return None
    if response.status_code != 200:
        raise RegistryUnavailable(
            safe_url(url), f"HTTP {response.status_code}", status_code=response.status_code
        )
    try:
        return json.loads(response.text)
    except json.JSONDecodeError as exc:
        logger.error("%s returned undecodable JSON: %s", context, exc)
        raise RegistryUnavailable(safe_url(url), "invalid JSON body", status_code=200) from exc


def post_json(
    url: str,
    body: Dict[str, Any],
    *,
    context: str,
    **kwargs: Any,
) -> Optional[Any]:
    """POST a JSON body and parse the JSON reply.

    Returns:
        The decoded payload, or None when the registry answered 404.

    Raises:
        RegistryUnavailable: on exhausted retries, unexpected status or bad JSON.
    """
    response = robust_request(
        "POST",
        url,
        context=context,
        data=json.dumps(body, sort_keys=True),
        headers=HEADERS_JSON,
        **kwargs,
    )
    return _decode_json(response, url, context)


def download_file(url: str, dest: str, *, context: str = "download", **kwargs: Any) -> int:
    """Stream ``url`` into ``dest`` atomically and return the byte count.

    The body is written to a temporary file in the destination directory and
    renamed into place, so an interrupted download never leaves a partial
    archive behind.
    """
    response = robust_request("GET", url, context=context, stream=True, **kwargs)
    if response.status_code != 200:
        raise RegistryUnavailable(
            safe_url(url), f"HTTP {response.status_code}", status_code=response.status_code
        )
    directory = os.path.dirname(dest) or "."
    os.makedirs(directory, exist_ok=True)
    size = 0
    fd, tmp_path = tempfile.mkstemp(prefix=".part-", dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            for chunk in response.iter_content(chunk_size=65536):
                if chunk:
                    handle.write(chunk)
                    size += len(chunk)
        os.replace(tmp_path, dest)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise
    finally:
        response.close()
    return size
