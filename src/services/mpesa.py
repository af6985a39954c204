"""M-Pesa Daraja client for STK push payments."""

import base64
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

import httpx
from pydantic import ValidationError

from src.config import Settings
from src.schemas.mpesa import StkPushPayload, StkPushResponse, StkQueryPayload

logger = logging.getLogger(__name__)

TOKEN_PATH = "/oauth/v1/generate"
STK_PUSH_PATH = "/mpesa/stkpush/v1/processrequest"
STK_QUERY_PATH = "/mpesa/stkpushquery/v1/query"


class GatewayError(Exception):
    """Network, HTTP status or payload failure talking to M-Pesa."""


class GatewayAuthError(GatewayError):
    """M-Pesa refused the consumer credentials or returned no access token."""


def format_timestamp(moment: datetime) -> str:
    """Timestamp in the YYYYMMDDHHmmss format M-Pesa expects."""
    return moment.strftime("%Y%m%d%H%M%S")


def generate_password(shortcode: str, passkey: str, timestamp: str) -> str:
    """Base64 of shortcode + passkey + timestamp."""
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode()).decode("ascii")


def format_amount(amount: Decimal | int | float) -> str:
    """M-Pesa only charges whole shillings."""
    return f"{Decimal(str(amount)):.0f}"


def _error_body(response: httpx.Response) -> dict[str, Any] | None:
    """Daraja error payload (errorCode/errorMessage), if the response carries one."""
    try:
        data = response.json()
    except ValueError:
        return None
    if isinstance(data, dict) and "errorCode" in data:
        return data
    return None


class MpesaClient:
    """Stateless client for the Daraja API.

    Access tokens are fetched per call and never cached here. Every request
    is bounded by ``settings.mpesa_timeout_seconds``.
    """

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None):
        self.settings = settings
        self.base_url = settings.mpesa_base_url.rstrip("/")
        self.timeout = settings.mpesa_timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url, timeout=self.timeout, transport=self._transport
        )

    def _timestamp(self) -> str:
        # Daraja validates the password against the merchant's local clock
        return format_timestamp(datetime.now())

    async def get_access_token(self) -> str:
        """Exchange the consumer key and secret for a bearer token."""
        key = self.settings.mpesa_consumer_key or ""
        secret = self.settings.mpesa_consumer_secret or ""
        try:
            async with self._client() as client:
                response = await client.get(
                    TOKEN_PATH,
                    params={"grant_type": "client_credentials"},
                    auth=httpx.BasicAuth(key, secret),
                )
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"M-Pesa token request rejected: {e.response.status_code}")
            raise GatewayAuthError("M-Pesa rejected the consumer credentials") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"M-Pesa token request failed: {e}")
            raise GatewayAuthError("Could not obtain an M-Pesa access token") from e

        token = data.get("access_token") if isinstance(data, dict) else None
        if not token:
            logger.error("M-Pesa token response did not contain an access_token")
            raise GatewayAuthError("M-Pesa token response missing access_token")
        return token

    async def _post(
        self,
        path: str,
        access_token: str,
        payload: dict[str, Any],
        allow_error_body: bool = False,
    ) -> Any:
        try:
            async with self._client() as client:
                response = await client.post(
                    path,
                    json=payload,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                if allow_error_body and response.is_error:
                    error_body = _error_body(response)
                    if error_body is not None:
                        return error_body
                response.raise_for_status()
                return response.json()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"M-Pesa {path} returned {e.response.status_code}: {e.response.text[:500]}"
            )
            raise GatewayError(f"M-Pesa returned HTTP {e.response.status_code}") from e
        except httpx.TimeoutException as e:
            logger.error(f"M-Pesa {path} timed out after {self.timeout}s")
            raise GatewayError("M-Pesa request timed out") from e
        except httpx.HTTPError as e:
            logger.error(f"HTTP error calling M-Pesa {path}: {e}")
            raise GatewayError("M-Pesa request failed") from e
        except ValueError as e:
            logger.error(f"M-Pesa {path} returned a non-JSON body: {e}")
            raise GatewayError("M-Pesa returned an unreadable response") from e

    async def initiate_stk_push(
        self,
        phone_number: str,
        amount: Decimal,
        account_reference: str,
        description: str,
        callback_url: str | None = None,
    ) -> StkPushResponse:
        """Send an STK push prompt to the payer's phone.

        Returns the gateway acknowledgement as-is; deciding what it means for
        the payment is left to the caller.
        """
        access_token = await self.get_access_token()
        shortcode = self.settings.mpesa_shortcode
        timestamp = self._timestamp()
        payload = StkPushPayload(
            business_short_code=shortcode,
            password=generate_password(shortcode, self.settings.mpesa_passkey or "", timestamp),
            timestamp=timestamp,
            transaction_type=self.settings.mpesa_transaction_type,
            amount=format_amount(amount),
            party_a=phone_number,
            party_b=shortcode,
            phone_number=phone_number,
            callback_url=callback_url or self.settings.mpesa_callback_url,
            account_reference=account_reference,
            transaction_desc=description,
        )

        logger.info(f"Sending STK push of {payload.amount} to {phone_number} ({account_reference})")
        data = await self._post(STK_PUSH_PATH, access_token, payload.model_dump(by_alias=True))

        try:
            return StkPushResponse.model_validate(data)
        except ValidationError as e:
            logger.error(f"Unexpected STK push response: {data}")
            raise GatewayError("M-Pesa returned an unexpected STK push response") from e

    async def query_stk_status(self, checkout_request_id: str) -> dict[str, Any]:
        """Ask M-Pesa for the outcome of an STK push.

        The body is returned unparsed; the query schema varies more than the
        push and callback schemas do.
        """
        access_token = await self.get_access_token()
        shortcode = self.settings.mpesa_shortcode
        timestamp = self._timestamp()
        payload = StkQueryPayload(
            business_short_code=shortcode,
            password=generate_password(shortcode, self.settings.mpesa_passkey or "", timestamp),
            timestamp=timestamp,
            checkout_request_id=checkout_request_id,
        )
        # A pending transaction is reported as HTTP 500 with an errorCode body
        data = await self._post(
            STK_QUERY_PATH,
            access_token,
            payload.model_dump(by_alias=True),
            allow_error_body=True,
        )
        if not isinstance(data, dict):
            raise GatewayError("M-Pesa returned an unexpected status query response")
        return data
