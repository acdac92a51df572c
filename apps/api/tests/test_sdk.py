"""Tests for the Python SDK client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from ecosangam_sdk import EcoSangamClient


def fake_response(status_code=200, body=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} error")
    return response


def test_login_sets_bearer_header():
    client = EcoSangamClient("http://api.test/")

    with patch.object(client.session, "request", return_value=fake_response(body={"token": "abc"})) as request:
        client.login("ngo@example.org", "ngo123")

    request.assert_called_once_with(
        "POST", "http://api.test/v1/auth/login", json={"email": "ngo@example.org", "credential": "ngo123"}
    )
    assert client.session.headers["Authorization"] == "Bearer abc"


def test_transfer_posts_to_token():
    client = EcoSangamClient("http://api.test", token="abc")

    with patch.object(client.session, "request", return_value=fake_response(body={"tx_type": "transfer"})) as request:
        result = client.transfer("tok-1", "org-ngo", "org-buyer", 25)

    assert result == {"tx_type": "transfer"}
    request.assert_called_once_with(
        "POST",
        "http://api.test/v1/credits/tokens/tok-1/transfer",
        json={"from_owner": "org-ngo", "to_owner": "org-buyer", "amount": 25},
    )


def test_errors_raise_http_error():
    client = EcoSangamClient("http://api.test", token="abc")

    with patch.object(client.session, "request", return_value=fake_response(status_code=409)):
        with pytest.raises(requests.HTTPError):
            client.retire("tok-1", 10, "Offset")


def test_logout_drops_token():
    client = EcoSangamClient("http://api.test", token="abc")

    with patch.object(client.session, "request", return_value=fake_response(status_code=204)):
        client.logout()

    assert "Authorization" not in client.session.headers


def test_transactions_feed_passes_filters():
    client = EcoSangamClient("http://api.test", token="abc")

    with patch.object(client.session, "request", return_value=fake_response(body=[])) as request:
        client.get_transactions(owner="org-ngo", limit=10)

    request.assert_called_once_with(
        "GET", "http://api.test/v1/credits/transactions", params={"owner": "org-ngo", "limit": 10}
    )
