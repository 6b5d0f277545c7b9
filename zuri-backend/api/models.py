"""
API Request and Response Models.

Pydantic models for validating API requests and serializing responses.
JSON field names are camelCase (the frontend's convention); Python attributes
stay snake_case.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from domain.assets import format_amount
from domain.payment import PaymentRecord
from services.pricing_service import FundingQuote


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _amount_as_text(value):
    # JSON numbers are accepted but handled as text from here on.
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# ============================================================================
# Quote Models
# ============================================================================

class QuoteRequest(CamelModel):
    """Request to price a payment without creating it."""
    dest_asset: str = Field(..., description="Asset the recipient receives (ETH, USDC, SOL, USDC_SOL)")
    dest_amount: str = Field(..., description="Payout amount in human units")
    pay_asset: str = Field(..., description="Asset the user funds the payment with")

    @field_validator("dest_amount", mode="before")
    @classmethod
    def amount_as_text(cls, value):
        return _amount_as_text(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {"destAsset": "SOL", "destAmount": "1.5", "payAsset": "ETH"}
        },
    )


class QuoteResponse(CamelModel):
    """Funding-side breakdown for a prospective payment."""
    pay_asset: str
    dest_asset: str
    dest_amount: str
    funding_amount: str
    fee: str
    funding_amount_with_fee: str
    fee_rate: str
    expires_at: datetime

    @classmethod
    def from_quote(cls, quote: FundingQuote) -> "QuoteResponse":
        return cls(
            pay_asset=quote.pay_asset.value,
            dest_asset=quote.dest_asset.value,
            dest_amount=format_amount(quote.dest_amount),
            funding_amount=str(quote.funding_amount),
            fee=str(quote.fee),
            funding_amount_with_fee=str(quote.funding_amount_with_fee),
            fee_rate=str(quote.fee_rate),
            expires_at=quote.expires_at,
        )


# ============================================================================
# Payment Models
# ============================================================================

class CreatePaymentRequest(CamelModel):
    """
    Request to create a payment.

    The original ETH-only form (`amountEth`, no assets) is still accepted and
    means an ETH payout funded with ETH.
    """
    recipient: str = Field(..., min_length=1, description="Destination-chain address of the payee")
    dest_asset: str = Field(default="ETH")
    dest_amount: str = Field(
        ...,
        validation_alias=AliasChoices("destAmount", "amountEth", "dest_amount"),
        description="Payout amount in human units",
    )
    pay_asset: str = Field(default="ETH")
    dest_chain: Optional[str] = Field(default=None, description="Optional explicit destination chain")

    @field_validator("dest_amount", mode="before")
    @classmethod
    def amount_as_text(cls, value):
        return _amount_as_text(value)

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "recipient": "0x8ba1f109551bd432803012645ac136ddd64dba72",
                "destAsset": "ETH",
                "destAmount": "0.1",
                "payAsset": "ETH",
            }
        },
    )


class CreatePaymentResponse(CamelModel):
    payment_id: str
    status: str
    collector_address: str
    pay_asset: str
    funding_amount: str
    fee: str
    funding_amount_with_fee: str
    dest_asset: str
    dest_amount: str
    dest_chain: Optional[str] = None
    recipient: str
    created_at: datetime

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "CreatePaymentResponse":
        return cls(
            payment_id=str(record.payment_id),
            status=record.status.public_label,
            collector_address=record.collector_address,
            pay_asset=record.pay_asset.value,
            funding_amount=str(record.funding_amount),
            fee=str(record.fee),
            funding_amount_with_fee=str(record.funding_amount_with_fee),
            dest_asset=record.dest_asset.value,
            dest_amount=format_amount(record.dest_amount),
            dest_chain=record.dest_chain.value if record.dest_chain else None,
            recipient=record.recipient,
            created_at=record.created_at,
        )


class AttachFundingTxRequest(CamelModel):
    """Attach the user's funding transaction. `fundingTxHash` is the legacy field name."""
    payment_id: str = Field(..., min_length=1)
    funding_tx_reference: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("fundingTxReference", "fundingTxHash", "funding_tx_reference"),
    )

    @model_validator(mode="after")
    def require_reference(self) -> "AttachFundingTxRequest":
        if not (self.funding_tx_reference or "").strip():
            raise ValueError("fundingTxReference is required")
        return self


class AttachFundingTxResponse(CamelModel):
    ok: bool = True
    payment_id: str
    status: str
    funding_tx_reference: str


class PaymentStatusResponse(CamelModel):
    """
    Public projection of a payment record.

    PRIVACY_BURNED is reported as COLLECTED; error carries the stored diagnostic
    text verbatim.
    """
    payment_id: str
    status: str
    recipient: str
    pay_asset: str
    funding_amount: str
    fee: str
    funding_amount_with_fee: str
    collector_address: str
    funding_tx_reference: Optional[str] = None
    dest_asset: str
    dest_amount: str
    dest_decimals: int
    dest_chain: Optional[str] = None
    privacy_burn_reference: Optional[str] = None
    intent_id: Optional[str] = None
    intent_ledger_tx_reference: Optional[str] = None
    payout_tx_reference: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_record(cls, record: PaymentRecord) -> "PaymentStatusResponse":
        return cls(
            payment_id=str(record.payment_id),
            status=record.status.public_label,
            recipient=record.recipient,
            pay_asset=record.pay_asset.value,
            funding_amount=str(record.funding_amount),
            fee=str(record.fee),
            funding_amount_with_fee=str(record.funding_amount_with_fee),
            collector_address=record.collector_address,
            funding_tx_reference=record.funding_tx_reference,
            dest_asset=record.dest_asset.value,
            dest_amount=format_amount(record.dest_amount),
            dest_decimals=record.dest_decimals,
            dest_chain=record.dest_chain.value if record.dest_chain else None,
            privacy_burn_reference=record.privacy_burn_reference,
            intent_id=record.intent_id,
            intent_ledger_tx_reference=record.intent_ledger_tx_reference,
            payout_tx_reference=record.payout_tx_reference,
            error=record.error,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )


# ============================================================================
# Error Models
# ============================================================================

class ErrorResponse(BaseModel):
    """Standard error response."""
    detail: str

    class Config:
        json_schema_extra = {
            "example": {
                "detail": "Payment not found: 123e4567-e89b-12d3-a456-426614174000"
            }
        }
