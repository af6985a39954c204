"""Tests for the M-Pesa Daraja client."""

import base64
import json
from decimal import Decimal
from unittest.mock import patch

import httpx
import pytest

from src.services.mpesa import (
    STK_PUSH_PATH,
    STK_QUERY_PATH,
    TOKEN_PATH,
    GatewayAuthError,
    GatewayError,
    MpesaClient,
    format_amount,
    generate_password,
)

TIMESTAMP = "20261019120512"


class FakeDaraja:
    """Records requests and answers them from a path -> response table."""

    def __init__(self, responses: dict):
        self.responses = {TOKEN_PATH: httpx.Response(200, json={"access_token": "tok-123"})}
        self.responses.update(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses[request.url.path]
        if isinstance(response, Exception):
            raise response
        return response

    def body(self, path: str) -> dict:
        request = next(r for r in self.requests if r.url.path == path)
        return json.loads(request.content)


def make_client(settings, daraja: FakeDaraja) -> MpesaClient:
    return MpesaClient(settings, transport=httpx.MockTransport(daraja))


ACCEPTED = {
    "MerchantRequestID": "29115-34620561-1",
    "CheckoutRequestID": "ws_CO_191220191020363925",
    "ResponseCode": "0",
    "ResponseDescription": "Success. Request accepted for processing",
    "CustomerMessage": "Success. Request accepted for processing",
}


async def _push(client: MpesaClient):
    with patch.object(MpesaClient, "_timestamp", return_value=TIMESTAMP):
        return await client.initiate_stk_push(
            phone_number="254712345678",
            amount=Decimal("500.00"),
            account_reference="INV001",
            description="Invoice payment",
        )


def test_generate_password():
    expected = base64.b64encode(b"174379test-passkey20261019120512").decode()
    assert generate_password("174379", "test-passkey", TIMESTAMP) == expected


@pytest.mark.parametrize(
    "amount,expected", [(Decimal("500.00"), "500"), (Decimal("1"), "1"), (250, "250")]
)
def test_format_amount(amount, expected):
    assert format_amount(amount) == expected


class TestGetAccessToken:
    """Tests for the OAuth client credentials exchange."""

    @pytest.mark.asyncio
    async def test_uses_basic_auth(self, settings):
        daraja = FakeDaraja({})
        token = await make_client(settings, daraja).get_access_token()

        assert token == "tok-123"
        request = daraja.requests[0]
        assert request.url.params["grant_type"] == "client_credentials"
        expected = base64.b64encode(b"consumer-key:consumer-secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_rejected_credentials(self, settings):
        daraja = FakeDaraja({TOKEN_PATH: httpx.Response(401, text="Unauthorized")})
        with pytest.raises(GatewayAuthError):
            await make_client(settings, daraja).get_access_token()

    @pytest.mark.asyncio
    async def test_missing_token(self, settings):
        daraja = FakeDaraja({TOKEN_PATH: httpx.Response(200, json={"expires_in": "3599"})})
        with pytest.raises(GatewayAuthError):
            await make_client(settings, daraja).get_access_token()


class TestInitiateStkPush:
    """Tests for the STK push request."""

    @pytest.mark.asyncio
    async def test_sends_payload(self, settings):
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.Response(200, json=ACCEPTED)})

        response = await _push(make_client(settings, daraja))

        assert response.accepted
        assert response.checkout_request_id == "ws_CO_191220191020363925"
        body = daraja.body(STK_PUSH_PATH)
        assert body["BusinessShortCode"] == "174379"
        assert body["Password"] == generate_password("174379", "test-passkey", TIMESTAMP)
        assert body["Timestamp"] == TIMESTAMP
        assert body["TransactionType"] == "CustomerPayBillOnline"
        assert body["Amount"] == "500"
        assert body["PartyA"] == "254712345678"
        assert body["PartyB"] == "174379"
        assert body["PhoneNumber"] == "254712345678"
        assert body["CallBackURL"] == settings.mpesa_callback_url
        assert body["AccountReference"] == "INV001"
        assert body["TransactionDesc"] == "Invoice payment"

        push_request = daraja.requests[-1]
        assert push_request.headers["Authorization"] == "Bearer tok-123"

    @pytest.mark.asyncio
    async def test_token_failure_skips_push(self, settings):
        daraja = FakeDaraja({TOKEN_PATH: httpx.Response(400, json={"errorCode": "400.008.01"})})

        with pytest.raises(GatewayAuthError):
            await _push(make_client(settings, daraja))
        assert [r.url.path for r in daraja.requests] == [TOKEN_PATH]

    @pytest.mark.asyncio
    async def test_server_error(self, settings):
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.Response(500, json={"errorCode": "500.001"})})
        with pytest.raises(GatewayError):
            await _push(make_client(settings, daraja))

    @pytest.mark.asyncio
    async def test_timeout(self, settings):
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.ReadTimeout("timed out")})
        with pytest.raises(GatewayError):
            await _push(make_client(settings, daraja))

    @pytest.mark.asyncio
    async def test_numeric_response_code_is_accepted(self, settings):
        numeric = {**ACCEPTED, "ResponseCode": 0}
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.Response(200, json=numeric)})

        response = await _push(make_client(settings, daraja))

        assert response.response_code == "0"
        assert response.accepted

    @pytest.mark.asyncio
    async def test_malformed_response(self, settings):
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.Response(200, json={"unexpected": True})})
        with pytest.raises(GatewayError):
            await _push(make_client(settings, daraja))

    @pytest.mark.asyncio
    async def test_non_json_response(self, settings):
        daraja = FakeDaraja({STK_PUSH_PATH: httpx.Response(200, text="<html>oops</html>")})
        with pytest.raises(GatewayError):
            await _push(make_client(settings, daraja))


class TestQueryStkStatus:
    """Tests for the STK push status query."""

    @pytest.mark.asyncio
    async def test_returns_result(self, settings):
        result = {
            "ResponseCode": "0",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResultCode": "1032",
            "ResultDesc": "Request cancelled by user",
        }
        daraja = FakeDaraja({STK_QUERY_PATH: httpx.Response(200, json=result)})

        with patch.object(MpesaClient, "_timestamp", return_value=TIMESTAMP):
            data = await make_client(settings, daraja).query_stk_status(
                "ws_CO_191220191020363925"
            )

        assert data["ResultCode"] == "1032"
        body = daraja.body(STK_QUERY_PATH)
        assert body == {
            "BusinessShortCode": "174379",
            "Password": generate_password("174379", "test-passkey", TIMESTAMP),
            "Timestamp": TIMESTAMP,
            "CheckoutRequestID": "ws_CO_191220191020363925",
        }

    @pytest.mark.asyncio
    async def test_pending_error_body_is_returned(self, settings):
        pending = {
            "requestId": "1234-5678",
            "errorCode": "500.001.1001",
            "errorMessage": "The transaction is being processed",
        }
        daraja = FakeDaraja({STK_QUERY_PATH: httpx.Response(500, json=pending)})

        data = await make_client(settings, daraja).query_stk_status("ws_CO_1")

        assert data == pending

    @pytest.mark.asyncio
    async def test_error_without_body(self, settings):
        daraja = FakeDaraja({STK_QUERY_PATH: httpx.Response(503, text="Service Unavailable")})
        with pytest.raises(GatewayError):
            await make_client(settings, daraja).query_stk_status("ws_CO_1")
