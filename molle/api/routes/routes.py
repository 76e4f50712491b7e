import json
import logging

from fastapi import APIRouter, Depends, Header, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
import razorpay

from molle import config
from molle.api.dependencies import (
    Caller,
    get_db,
    get_raw_body,
    require_admin,
    require_host_or_admin,
)
from molle.application.fee_service import FeeService
from molle.application.settlement_service import SettlementService
from molle.application.ticket_service import TicketService, TicketView
from molle.api.schemas.schemas import (
    BookingStatusResponse,
    EventFeesResponse,
    FeeBreakdownResponse,
    FeePercentagesResponse,
    FeeSettingResponse,
    FeeSettingsUpdate,
    GatewayPayload,
    HostFeeResponse,
    HostFeeUpdate,
    ManualReleaseRequest,
    SettlementResponse,
    TicketResponse,
    WebhookAck,
)
from molle.domain.exceptions import (
    AccessDeniedError,
    BookingNotFoundError,
    EventNotFoundError,
    HostNotFoundError,
    InvalidFeeInputError,
    InvalidSettingError,
    InvalidStateTransitionError,
    PaymentNotSuccessfulError,
    TicketNotFoundError,
    TicketVerificationError,
)
from molle.domain.notifications import PaymentNotification, SettlementResult
from molle.domain.state_machine import PaymentStatus
from molle.infrastructure.repositories.booking_repository import BookingRepository
from molle.infrastructure.repositories.ticket_repository import TicketRepository
from molle.infrastructure.repositories.webhook_repository import WebhookRepository, hash_payload


router = APIRouter()
logger = logging.getLogger(__name__)

WEBHOOK_PROVIDER = "CASHFREE"
PAYMENT_SUCCESS_WEBHOOK = "PAYMENT_SUCCESS_WEBHOOK"
PAYMENT_FAILURE_WEBHOOKS = {"PAYMENT_FAILED_WEBHOOK", "PAYMENT_USER_DROPPED_WEBHOOK"}


def _razorpay_client() -> razorpay.Client:
    # Signature checks need no API credentials; pass them through when configured.
    return razorpay.Client(auth=config.razorpay_credentials())


def _verify_webhook_signature(raw_body: str, signature: str | None) -> None:
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing signature",
        )

    secret = config.payment_webhook_secret()
    if not secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured. Set PAYMENT_WEBHOOK_SECRET.",
        )

    try:
        _razorpay_client().utility.verify_webhook_signature(raw_body, signature, secret)
    except razorpay.errors.SignatureVerificationError as exc:
        logger.warning("Rejected payment webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        ) from exc


def _settle(db: Session, notification: PaymentNotification) -> SettlementResult:
    service = SettlementService(db, treasury_user_id=config.platform_treasury_user_id())

    try:
        return service.apply_settlement(notification)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except PaymentNotSuccessfulError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except InvalidStateTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except Exception as exc:
        logger.exception("Settlement failed for order %s", notification.order_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc


def _ticket_response(view: TicketView) -> TicketResponse:
    ticket = view.ticket
    return TicketResponse(
        id=ticket.id,
        ticket_number=ticket.ticket_number,
        full_name=ticket.full_name,
        age=ticket.age,
        phone_number=ticket.phone_number,
        status=ticket.status.value,
        ticket_price=ticket.ticket_price,
        expected_ticket_price=view.expected_ticket_price,
        price_matches=view.price_matches,
        event_id=ticket.event_id,
        package_id=ticket.package_id,
        booking_id=ticket.booking_id,
        verified_at=ticket.verified_at.isoformat() if ticket.verified_at else None,
        verified_by=ticket.verified_by,
    )


@router.get("/health")
def health():
    return {"status": "ok"}


@router.post("/admin/manual-release", response_model=SettlementResponse)
def manual_release(
    request: ManualReleaseRequest,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if request.payload is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Webhook payload is required",
        )

    if not request.payload.order_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Order ID not found in payload",
        )

    notification = request.payload.to_notification()
    logger.info(
        "Manual release requested by %s for order %s",
        caller.user_id,
        notification.order_id,
    )
    result = _settle(db, notification)

    return SettlementResponse(
        success=result.success,
        message=result.message,
        booking_id=result.booking_id,
        ticket_count=result.ticket_count,
    )


@router.post("/webhooks/payments", response_model=WebhookAck, response_model_exclude_none=True)
def payment_webhook(
    raw_body: bytes = Depends(get_raw_body),
    x_webhook_signature: str | None = Header(default=None),
    db: Session = Depends(get_db),
):
    try:
        body_text = raw_body.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload",
        ) from exc

    _verify_webhook_signature(body_text, x_webhook_signature)

    try:
        payload = GatewayPayload.model_validate(json.loads(body_text))
    except (ValueError, ValidationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Malformed webhook payload",
        ) from exc

    if payload.type == PAYMENT_SUCCESS_WEBHOOK:
        if not payload.order_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Order ID not found in payload",
            )

        notification = payload.to_notification()
        result = _settle(db, notification)

        if notification.gateway_payment_id:
            WebhookRepository(db).record_delivery(
                provider=WEBHOOK_PROVIDER,
                payment_id=notification.gateway_payment_id,
                booking_id=result.booking_id,
                payload_hash=hash_payload(raw_body),
            )

        return WebhookAck(
            success=True,
            booking_id=result.booking_id,
            ticket_count=result.ticket_count,
        )

    if payload.type in PAYMENT_FAILURE_WEBHOOKS:
        if payload.order_id:
            SettlementService(db).mark_payment_failed(payload.order_id)
        return WebhookAck(success=True)

    logger.info("Ignoring payment webhook of type %s", payload.type)
    return WebhookAck()


@router.get("/bookings/{booking_id}/status", response_model=BookingStatusResponse)
def booking_status(
    booking_id: str,
    db: Session = Depends(get_db),
):
    booking = BookingRepository(db).get_by_id(booking_id)
    if not booking:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Booking not found",
        )

    payment_status = booking.payment.status if booking.payment else PaymentStatus.PENDING
    return BookingStatusResponse(
        id=booking.id,
        status=booking.status.value,
        booking_number=booking.booking_number,
        total_amount=booking.total_amount,
        ticket_count=booking.ticket_count,
        payment_status=payment_status.value,
        tickets_count=TicketRepository(db).count_for_booking(booking.id),
    )


@router.get("/events/{event_id}/fees", response_model=EventFeesResponse)
def event_fees(
    event_id: str,
    package_id: str | None = None,
    db: Session = Depends(get_db),
):
    try:
        event, percentages, quotes = FeeService(db).quote_event(event_id, package_id)
    except EventNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidFeeInputError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return EventFeesResponse(
        event_id=event.id,
        percentages=FeePercentagesResponse.build(percentages),
        packages=[
            FeeBreakdownResponse.build(package.id, package.name, breakdown)
            for package, breakdown in quotes
        ],
    )


@router.get("/settings/fees", response_model=list[FeeSettingResponse])
def list_fee_settings(
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [
        FeeSettingResponse(
            key=setting.key,
            value=setting.value,
            display_name=setting.display_name,
            description=setting.description,
        )
        for setting in FeeService(db).list_settings()
    ]


@router.put("/settings/fees", response_model=list[FeeSettingResponse])
def update_fee_settings(
    request: FeeSettingsUpdate,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        settings = FeeService(db).update_settings(
            {key: str(value) for key, value in request.settings.items()}
        )
    except InvalidSettingError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    logger.info("Fee settings updated by %s: %s", caller.user_id, sorted(request.settings))
    return [
        FeeSettingResponse(
            key=setting.key,
            value=setting.value,
            display_name=setting.display_name,
            description=setting.description,
        )
        for setting in settings
    ]


@router.put("/hosts/{host_id}/fee", response_model=HostFeeResponse)
def update_host_fee(
    host_id: str,
    request: HostFeeUpdate,
    caller: Caller = Depends(require_admin),
    db: Session = Depends(get_db),
):
    try:
        host = FeeService(db).set_host_fee(host_id, request.host_fee_percentage)
    except HostNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (AccessDeniedError, InvalidSettingError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc

    return HostFeeResponse(host_id=host.id, host_fee_percentage=host.host_fee_percentage)


@router.get("/tickets/{qr_code}", response_model=TicketResponse)
def get_ticket(
    qr_code: str,
    caller: Caller = Depends(require_host_or_admin),
    db: Session = Depends(get_db),
):
    try:
        view = TicketService(db).get_ticket(qr_code, caller.user_id, caller.role)
    except TicketNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc

    return _ticket_response(view)


@router.post("/tickets/{qr_code}/verify", response_model=TicketResponse)
def verify_ticket(
    qr_code: str,
    caller: Caller = Depends(require_host_or_admin),
    db: Session = Depends(get_db),
):
    try:
        view = TicketService(db).verify_ticket(qr_code, caller.user_id, caller.role)
    except TicketNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except AccessDeniedError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=str(exc),
        ) from exc
    except TicketVerificationError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc

    return _ticket_response(view)
