"""Tests for verification URL and HTML form helpers."""

import base64

import pytest

from randomorg_client.core.errors import InvalidRequestError
from randomorg_client.utils.signature_links import MAX_URL_LENGTH, create_html, create_url


def test_create_url_encodes_random_and_signature() -> None:
    random = {"method": "generateSignedIntegers", "data": [1, 2]}
    signature = "abc+/def="

    url = create_url(random, signature)

    assert url.startswith("https://api.random.org/signatures/form?format=json&random=")
    encoded_random = base64.b64encode(b'{"method":"generateSignedIntegers","data":[1,2]}').decode()
    assert "random=" + encoded_random.replace("=", "%3D").replace("+", "%2B").replace("/", "%2F") in url


def test_base64_signature_is_not_reencoded() -> None:
    url = create_url({"data": [1]}, "QUJD")

    assert url.endswith("&signature=QUJD")


def test_non_base64_signature_is_encoded() -> None:
    url = create_url({"data": [1]}, "not base64!")

    assert url.endswith("&signature=" + base64.b64encode(b"not base64!").decode().replace("=", "%3D"))


def test_overlong_url_is_rejected() -> None:
    random = {"data": list(range(MAX_URL_LENGTH))}

    with pytest.raises(InvalidRequestError, match="maximum length"):
        create_url(random, "QUJD")


def test_create_html_builds_hidden_form() -> None:
    html = create_html({"data": [1]}, "QUJD")

    assert html.startswith("<form action='https://api.random.org/signatures/form' method='post'>")
    assert "<input type='hidden' name='format' value='json' />" in html
    assert "<input type='hidden' name='random' value='{&quot;data&quot;:[1]}' />" in html
    assert "<input type='hidden' name='signature' value='QUJD' />" in html
    assert html.endswith("</form>")
