"""Pydantic schemas for payment, escrow and wallet resources."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import Field

from kindkart.models import EscrowStatus, HelpRequestStatus, TransactionStatus
from kindkart.schemas.base import APIModel


class CreateOrderRequest(APIModel):
    request_id: str = Field(..., min_length=1, max_length=36)
    amount: int = Field(..., gt=0, description="Amount in minor units (paise)")
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    helper_id: str = Field(..., min_length=1, max_length=36)


class GatewayOrderRead(APIModel):
    id: str
    amount: int
    currency: str
    receipt: str
    status: str


class TransactionRead(APIModel):
    id: str
    request_id: str
    payer_id: str
    payee_id: str
    amount: Decimal
    currency: str
    status: TransactionStatus
    gateway_reference: str | None = None
    captured_at: datetime | None = None
    created_at: datetime


class EscrowHoldRead(APIModel):
    id: str
    transaction_id: str
    release_time: datetime
    status: EscrowStatus
    is_active: bool


class CreateOrderResponse(APIModel):
    order: GatewayOrderRead
    transaction: TransactionRead


class VerifyPaymentRequest(APIModel):
    order_id: str = Field(..., min_length=1, max_length=128)
    payment_id: str = Field(..., min_length=1, max_length=128)
    signature: str = Field(..., min_length=1, max_length=256)


class VerifyPaymentResponse(APIModel):
    message: str = "Payment verified and held in escrow"
    transaction: TransactionRead
    escrow_hold: EscrowHoldRead


class WalletRead(APIModel):
    balance: Decimal
    pending_amount: Decimal
    disputed_amount: Decimal
    total_earned: Decimal
    total_spent: Decimal


class HoldSummaryRead(APIModel):
    id: str
    status: EscrowStatus
    release_time: datetime
    is_active: bool


class TransactionHistoryItem(APIModel):
    id: str
    type: str
    amount: Decimal
    currency: str
    status: TransactionStatus
    description: str
    request_id: str
    request_title: str | None = None
    counterparty_id: str
    counterparty_name: str | None = None
    created_at: datetime
    escrow_hold: HoldSummaryRead | None = None


class DisputeRequest(APIModel):
    reason: str | None = Field(default=None, max_length=2000)


class CompleteRequestBody(APIModel):
    proof: str | None = Field(default=None, max_length=2048)


class HelpRequestRead(APIModel):
    id: str
    status: HelpRequestStatus
    requester_id: str
    helper_id: str | None = None
    completed_at: datetime | None = None
    attachments: list[str] = Field(default_factory=list)


class CompleteRequestResponse(APIModel):
    message: str = "Request marked as completed"
    request: HelpRequestRead


__all__ = [
    "CompleteRequestBody",
    "CompleteRequestResponse",
    "CreateOrderRequest",
    "CreateOrderResponse",
    "DisputeRequest",
    "EscrowHoldRead",
    "GatewayOrderRead",
    "HelpRequestRead",
    "HoldSummaryRead",
    "TransactionHistoryItem",
    "TransactionRead",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "WalletRead",
]
