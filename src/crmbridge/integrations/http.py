"""Shared HTTP plumbing for the remote API clients."""

import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple, Type

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..exceptions import (
    ConnectorError,
    RateLimitedError,
    RecordNotFoundError,
    TransientConnectorError,
    ValidationRejectedError,
)

logger = logging.getLogger(__name__)

USER_AGENT = "crm-bridge/0.1.0"
DEFAULT_RETRY_AFTER = 1.0

_FRACTION_RE = re.compile(r"\.(\d+)")
_COMPACT_OFFSET_RE = re.compile(r"([+-]\d{2})(\d{2})$")


def build_session(headers: Dict[str, str]) -> requests.Session:
    """Create a session that retries server errors.

    Rate limits are not retried here; a 429 surfaces as RateLimitedError so
    the engine can honour Retry-After.
    """
    session = requests.Session()
    retry_strategy = Retry(
        total=3,
        status_forcelist=[500, 502, 503, 504],
        backoff_factor=1
    )
    adapter = HTTPAdapter(max_retries=retry_strategy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)

    session.headers.update({
        'Content-Type': 'application/json',
        'User-Agent': USER_AGENT,
        **headers,
    })
    return session


def parse_retry_after(value: Optional[str]) -> float:
    """Seconds from a Retry-After header. HTTP dates fall back to the default."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(float(value), 0.0)
    except ValueError:
        return DEFAULT_RETRY_AFTER


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse the ISO 8601 variants both APIs return into an aware UTC datetime."""
    if not value:
        return None
    text = value.strip().replace("Z", "+00:00")
    text = _COMPACT_OFFSET_RE.sub(r"\1:\2", text)
    # fromisoformat accepts at most microseconds
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def send(
    session: requests.Session,
    service: str,
    method: str,
    url: str,
    error_class: Type[ConnectorError],
    params: Optional[Dict[str, Any]] = None,
    data: Optional[Dict[str, Any]] = None,
    timeout: float = 30.0,
    record: Optional[Tuple[str, str]] = None,
) -> Any:
    """
    Make a request and map failures onto the connector error taxonomy.

    Args:
        session: Configured session
        service: Service name for error messages
        method: HTTP method
        url: Absolute URL
        error_class: Raised for failures without a more specific type
        params: Query parameters
        data: JSON body
        timeout: Request timeout in seconds
        record: (object, id) reported when the response is a 404

    Returns:
        Decoded JSON body, or None for empty responses

    Raises:
        RateLimitedError: On 429
        TransientConnectorError: On timeouts, connection failures and exhausted 5xx retries
        RecordNotFoundError: On 404 for a record request
        ValidationRejectedError: On 400 and 422
    """
    try:
        logger.debug(f"Making {method} request to {url} with params: {params}")
        response = session.request(method, url, params=params, json=data, timeout=timeout)
    except (requests.exceptions.Timeout, requests.exceptions.ConnectionError, requests.exceptions.RetryError) as e:
        logger.error(f"{service} API request failed: {e}")
        raise TransientConnectorError(f"{service} request failed: {e}") from e
    except requests.exceptions.RequestException as e:
        logger.error(f"{service} API request failed: {e}")
        raise error_class(f"Request failed: {str(e)}") from e

    status = response.status_code
    if status == 429:
        raise RateLimitedError(service, parse_retry_after(response.headers.get("Retry-After")))
    if status >= 500:
        raise TransientConnectorError(f"{service} HTTP {status}: {response.text}")
    if status == 404 and record is not None:
        raise RecordNotFoundError(*record)
    if status in (400, 422):
        raise ValidationRejectedError(f"{service} rejected the request: {_error_detail(response)}")
    if status >= 400:
        raise error_class(f"HTTP {status}: {_error_detail(response)}")

    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise error_class(f"Invalid JSON from {service}: {response.text[:200]}") from e


def _error_detail(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
