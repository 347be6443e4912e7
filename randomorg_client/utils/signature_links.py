"""Helpers producing links/forms for RANDOM.ORG's signature verification page."""

from __future__ import annotations

import base64
import html
import json
import re
from typing import Any

from randomorg_client.core.errors import InvalidRequestError

VERIFICATION_FORM_URL = "https://api.random.org/signatures/form"

# Maximum number of characters allowed in a signature verification URL
MAX_URL_LENGTH = 2046

_BASE64_PATTERN = re.compile(r"^([0-9a-zA-Z+/]{4})*(([0-9a-zA-Z+/]{2}==)|([0-9a-zA-Z+/]{3}=))?$")


def _format_url_value(value: str) -> str:
    """Base64-encode (unless already base64) and percent-encode for a query string."""
    if not _BASE64_PATTERN.match(value):
        value = base64.b64encode(value.encode("utf-8")).decode("ascii")
    return value.replace("=", "%3D").replace("+", "%2B").replace("/", "%2F")


def _serialize_random(random: dict[str, Any]) -> str:
    return json.dumps(random, separators=(",", ":"))


def create_url(random: dict[str, Any], signature: str) -> str:
    """Build a URL that opens the verification page for a signed response.

    Args:
        random: The "random" object of a signed response.
        signature: Its signature string.

    Returns:
        str: The verification URL.

    Raises:
        InvalidRequestError: If the URL would exceed MAX_URL_LENGTH characters.
    """
    url = (
        f"{VERIFICATION_FORM_URL}?format=json"
        f"&random={_format_url_value(_serialize_random(random))}"
        f"&signature={_format_url_value(signature)}"
    )
    if len(url) > MAX_URL_LENGTH:
        raise InvalidRequestError(
            code="url_too_long",
            message=f"URL exceeds maximum length ({MAX_URL_LENGTH} characters).",
        )
    return url


def _input_html(input_type: str, name: str, value: str) -> str:
    return f"<input type='{input_type}' name='{name}' value='{html.escape(value)}' />"


def create_html(random: dict[str, Any], signature: str) -> str:
    """Build an HTML form that posts a signed response to the verification page."""
    lines = [
        f"<form action='{VERIFICATION_FORM_URL}' method='post'>",
        "  " + _input_html("hidden", "format", "json"),
        "  " + _input_html("hidden", "random", _serialize_random(random)),
        "  " + _input_html("hidden", "signature", signature),
        "  <input type='submit' value='Validate' />",
        "</form>",
    ]
    return "\n".join(lines)
