"""Payment, escrow and wallet endpoints."""
from __future__ import annotations

from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from kindkart.api.deps import get_db_session, get_payment_gateway
from kindkart.api.routes.auth import AuthenticatedUser, get_current_user
from kindkart.core.errors import ForbiddenError, InvalidSignatureError, KindKartError
from kindkart.models import EscrowHold, HelpRequest, Transaction, is_active, utcnow
from kindkart.schemas.base import MessageResponse
from kindkart.schemas.payment import (
    CompleteRequestBody,
    CompleteRequestResponse,
    CreateOrderRequest,
    CreateOrderResponse,
    DisputeRequest,
    EscrowHoldRead,
    GatewayOrderRead,
    HelpRequestRead,
    HoldSummaryRead,
    TransactionHistoryItem,
    TransactionRead,
    VerifyPaymentRequest,
    VerifyPaymentResponse,
    WalletRead,
)
from kindkart.services.escrow import EscrowService
from kindkart.services.gateway import PaymentGateway
from kindkart.services.reputation import ReputationService
from kindkart.services.settlement import get_wallet, list_transactions

router = APIRouter(prefix="/payments")


def _http_error(exc: KindKartError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail())


def _transaction_read(transaction: Transaction) -> TransactionRead:
    return TransactionRead(
        id=transaction.id,
        request_id=transaction.request_id,
        payer_id=transaction.payer_id,
        payee_id=transaction.payee_id,
        amount=Decimal(transaction.amount),
        currency=transaction.currency,
        status=transaction.status,
        gateway_reference=transaction.gateway_reference,
        captured_at=transaction.captured_at,
        created_at=transaction.created_at,
    )


def _hold_read(hold: EscrowHold) -> EscrowHoldRead:
    return EscrowHoldRead(
        id=hold.id,
        transaction_id=hold.transaction_id,
        release_time=hold.release_time,
        status=hold.status,
        is_active=is_active(hold, utcnow()),
    )


def _request_read(request: HelpRequest) -> HelpRequestRead:
    return HelpRequestRead(
        id=request.id,
        status=request.status,
        requester_id=request.requester_id,
        helper_id=request.helper_id,
        completed_at=request.completed_at,
        attachments=list(request.attachments or []),
    )


@router.post("/create-order", response_model=CreateOrderResponse, status_code=status.HTTP_201_CREATED)
def create_order(
    payload: CreateOrderRequest,
    session: Session = Depends(get_db_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CreateOrderResponse:
    """Open a gateway order for the caller's help request; ``amount`` arrives in paise."""

    service = EscrowService(session, gateway=gateway)
    try:
        opened = service.open_order(
            request_id=payload.request_id,
            amount_minor=payload.amount,
            currency=payload.currency,
            payer_id=user.user_id,
            payee_id=payload.helper_id,
        )
    except KindKartError as exc:
        raise _http_error(exc) from exc

    return CreateOrderResponse(
        order=GatewayOrderRead(**opened.order.to_dict()),
        transaction=_transaction_read(opened.transaction),
    )


@router.post("/verify", response_model=VerifyPaymentResponse)
def verify_payment(
    payload: VerifyPaymentRequest,
    request: Request,
    session: Session = Depends(get_db_session),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    user: AuthenticatedUser = Depends(get_current_user),
) -> VerifyPaymentResponse:
    """Verify the gateway signature and move the captured funds into escrow."""

    service = EscrowService(session, gateway=gateway)
    try:
        transaction = service.verify_and_capture(
            order_id=payload.order_id,
            payment_id=payload.payment_id,
            signature=payload.signature,
            payer_id=user.user_id,
        )
    except InvalidSignatureError as exc:
        request.state.security_event = exc.code
        raise _http_error(exc) from exc
    except KindKartError as exc:
        raise _http_error(exc) from exc

    return VerifyPaymentResponse(
        transaction=_transaction_read(transaction),
        escrow_hold=_hold_read(transaction.escrow_hold),
    )


@router.get("/wallet/{user_id}", response_model=WalletRead)
def wallet(
    user_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> WalletRead:
    if user_id != user.user_id and not user.is_admin:
        raise _http_error(ForbiddenError())
    projection = get_wallet(session, user_id)
    return WalletRead(
        balance=projection.balance,
        pending_amount=projection.pending_amount,
        disputed_amount=projection.disputed_amount,
        total_earned=projection.total_earned,
        total_spent=projection.total_spent,
    )


@router.get("/transactions", response_model=list[TransactionHistoryItem])
def transactions(
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> list[TransactionHistoryItem]:
    items = []
    for view in list_transactions(session, user.user_id):
        hold = view.escrow_hold
        items.append(
            TransactionHistoryItem(
                id=view.id,
                type=view.type,
                amount=view.amount,
                currency=view.currency,
                status=view.status,
                description=view.description,
                request_id=view.request_id,
                request_title=view.request_title,
                counterparty_id=view.counterparty_id,
                counterparty_name=view.counterparty_name,
                created_at=view.created_at,
                escrow_hold=(
                    HoldSummaryRead(
                        id=hold.id, status=hold.status, release_time=hold.release_time, is_active=hold.is_active
                    )
                    if hold is not None
                    else None
                ),
            )
        )
    return items


@router.post("/release/{transaction_id}", response_model=MessageResponse)
def release_escrow(
    transaction_id: str,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> MessageResponse:
    service = EscrowService(session)
    try:
        resolution = service.release(transaction_id=transaction_id, caller_id=user.user_id)
    except KindKartError as exc:
        raise _http_error(exc) from exc

    if resolution.request_completed:
        ReputationService(session).award_completion_credits(resolution.request)
    return MessageResponse(message="Escrow released successfully")


@router.post("/dispute/{transaction_id}", response_model=MessageResponse)
def dispute_escrow(
    transaction_id: str,
    payload: DisputeRequest,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> MessageResponse:
    service = EscrowService(session)
    try:
        service.dispute(transaction_id=transaction_id, caller_id=user.user_id, reason=payload.reason)
    except KindKartError as exc:
        raise _http_error(exc) from exc
    return MessageResponse(message="Dispute raised; escrow release is frozen")


@router.post("/complete/{request_id}", response_model=CompleteRequestResponse)
def complete_request(
    request_id: str,
    payload: CompleteRequestBody | None = None,
    session: Session = Depends(get_db_session),
    user: AuthenticatedUser = Depends(get_current_user),
) -> CompleteRequestResponse:
    service = EscrowService(session)
    try:
        resolution = service.mark_request_completed(
            request_id=request_id,
            caller_id=user.user_id,
            proof=payload.proof if payload else None,
        )
    except KindKartError as exc:
        raise _http_error(exc) from exc

    if resolution.request_completed:
        ReputationService(session).award_completion_credits(resolution.request)
    return CompleteRequestResponse(request=_request_read(resolution.request))


__all__ = ["router"]
