"""Pydantic schemas package."""

from .base import APIModel, MessageResponse
from .payment import (
    CompleteRequestBody,
    CompleteRequestResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    DisputeRequest,
    TransactionHistoryItem,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WalletRead,
)
from .reputation import (
    AwardBadgeRequest,
    AwardBadgeResponse,
    CommunityReputationRead,
    LeaderboardEntryRead,
    ReputationRead,
    ReputationUpdateRequest,
    ReputationUpdateResponse,
)

__all__ = [
    "APIModel",
    "AwardBadgeRequest",
    "AwardBadgeResponse",
    "CommunityReputationRead",
    "CompleteRequestBody",
    "CompleteRequestResponse",
    "CreateOrderRequest",
    "CreateOrderResponse",
    "DisputeRequest",
    "LeaderboardEntryRead",
    "MessageResponse",
    "ReputationRead",
    "ReputationUpdateRequest",
    "ReputationUpdateResponse",
    "TransactionHistoryItem",
    "VerifyPaymentRequest",
    "VerifyPaymentResponse",
    "WalletRead",
]
