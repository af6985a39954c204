"""Wire models for the M-Pesa Daraja STK push API.

Field names follow the gateway's PascalCase JSON exactly; the Python
attributes are snake_case with aliases.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class MpesaModel(BaseModel):
    """Base for gateway payloads: populate by alias, ignore unknown fields."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class StkPushPayload(MpesaModel):
    """Body of POST /mpesa/stkpush/v1/processrequest."""

    business_short_code: str = Field(..., alias="BusinessShortCode")
    password: str = Field(..., alias="Password")
    timestamp: str = Field(..., alias="Timestamp")
    transaction_type: str = Field(..., alias="TransactionType")
    amount: str = Field(..., alias="Amount")
    party_a: str = Field(..., alias="PartyA")
    party_b: str = Field(..., alias="PartyB")
    phone_number: str = Field(..., alias="PhoneNumber")
    callback_url: str = Field(..., alias="CallBackURL")
    account_reference: str = Field(..., alias="AccountReference")
    transaction_desc: str = Field(..., alias="TransactionDesc")


class StkPushResponse(MpesaModel):
    """Synchronous acknowledgement of an STK push request."""

    response_code: str = Field(..., alias="ResponseCode")
    response_description: str | None = Field(None, alias="ResponseDescription")
    merchant_request_id: str | None = Field(None, alias="MerchantRequestID")
    checkout_request_id: str = Field(..., alias="CheckoutRequestID")
    customer_message: str | None = Field(None, alias="CustomerMessage")

    @field_validator("response_code", mode="before")
    @classmethod
    def coerce_response_code(cls, v: Any) -> Any:
        # Some proxies relay the code as a JSON number
        return str(v) if isinstance(v, int) else v

    @property
    def accepted(self) -> bool:
        return self.response_code == "0"


class StkQueryPayload(MpesaModel):
    """Body of POST /mpesa/stkpushquery/v1/query."""

    business_short_code: str = Field(..., alias="BusinessShortCode")
    password: str = Field(..., alias="Password")
    timestamp: str = Field(..., alias="Timestamp")
    checkout_request_id: str = Field(..., alias="CheckoutRequestID")


class CallbackItem(MpesaModel):
    """One named value in the callback metadata list."""

    name: str = Field(..., alias="Name")
    value: Any = Field(None, alias="Value")


class CallbackMetadata(MpesaModel):
    items: list[CallbackItem] = Field(default_factory=list, alias="Item")


class StkCallbackBody(MpesaModel):
    """Outcome of a previously initiated STK push."""

    result_code: int = Field(..., alias="ResultCode")
    result_desc: str | None = Field(None, alias="ResultDesc")
    merchant_request_id: str | None = Field(None, alias="MerchantRequestID")
    checkout_request_id: str = Field(..., alias="CheckoutRequestID")
    callback_metadata: CallbackMetadata | None = Field(None, alias="CallbackMetadata")

    def metadata_value(self, name: str) -> Any:
        """Value of the named metadata entry, or None if absent."""
        if self.callback_metadata is None:
            return None
        for item in self.callback_metadata.items:
            if item.name == name:
                return item.value
        return None


class StkCallback(MpesaModel):
    """Callback envelope posted by M-Pesa to the callback URL."""

    body: StkCallbackBody = Field(..., alias="Body")

    @model_validator(mode="before")
    @classmethod
    def unwrap_stk_callback(cls, data: Any) -> Any:
        # Live Daraja nests the result one level deeper: {"Body": {"stkCallback": {...}}}
        if isinstance(data, dict):
            body = data.get("Body")
            if isinstance(body, dict) and isinstance(body.get("stkCallback"), dict):
                return {**data, "Body": body["stkCallback"]}
        return data
