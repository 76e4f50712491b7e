from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from molle.domain.fees import FeeBreakdown, FeePercentages
from molle.domain.notifications import PaymentNotification


class WireModel(BaseModel):
    """Gateway payloads: unknown fields ignored, numeric ids accepted as strings."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)


class GatewayOrder(WireModel):
    order_id: str | None = None
    order_amount: float | None = None
    order_currency: str | None = None
    order_tags: dict[str, str | int | float | None] | None = None


class GatewayPayment(WireModel):
    cf_payment_id: str | None = None
    payment_status: str | None = None
    payment_amount: float | None = None
    payment_currency: str | None = None
    payment_message: str | None = None
    payment_time: str | None = None


class GatewayCustomer(WireModel):
    customer_name: str | None = None
    customer_id: str | None = None
    customer_email: str | None = None
    customer_phone: str | None = None


class GatewayData(WireModel):
    order: GatewayOrder | None = None
    payment: GatewayPayment | None = None
    customer_details: GatewayCustomer | None = None


class GatewayPayload(WireModel):
    data: GatewayData | None = None
    event_time: str | None = None
    type: str | None = None

    @property
    def order_id(self) -> str | None:
        if self.data and self.data.order:
            return self.data.order.order_id or None
        return None

    def to_notification(self) -> PaymentNotification:
        data = self.data or GatewayData()
        order = data.order or GatewayOrder()
        payment = data.payment or GatewayPayment()
        customer = data.customer_details or GatewayCustomer()
        tags = {
            key: str(value)
            for key, value in (order.order_tags or {}).items()
            if value is not None
        }
        return PaymentNotification(
            order_id=order.order_id or "",
            payment_status=payment.payment_status,
            gateway_payment_id=payment.cf_payment_id,
            order_tags=tags,
            customer_name=customer.customer_name,
            customer_phone=customer.customer_phone,
            customer_email=customer.customer_email,
        )


class ManualReleaseRequest(WireModel):
    payload: GatewayPayload | None = None


class SettlementResponse(BaseModel):
    success: bool = True
    message: str
    booking_id: str = Field(serialization_alias="bookingId")
    ticket_count: int = Field(serialization_alias="ticketCount")


class WebhookAck(BaseModel):
    received: bool = True
    success: bool | None = None
    booking_id: str | None = Field(default=None, serialization_alias="bookingId")
    ticket_count: int | None = Field(default=None, serialization_alias="ticketCount")


class BookingStatusResponse(BaseModel):
    id: str
    status: str
    booking_number: str = Field(serialization_alias="bookingNumber")
    total_amount: Decimal = Field(serialization_alias="totalAmount")
    ticket_count: int = Field(serialization_alias="ticketCount")
    payment_status: str = Field(serialization_alias="paymentStatus")
    tickets_count: int = Field(serialization_alias="ticketsCount")


class FeeSettingResponse(BaseModel):
    key: str
    value: str
    display_name: str = Field(serialization_alias="displayName")
    description: str | None = None


class FeeSettingsUpdate(BaseModel):
    settings: dict[str, str | int | float]


class HostFeeUpdate(BaseModel):
    host_fee_percentage: Decimal | None = Field(default=None, ge=0, le=100)


class HostFeeResponse(BaseModel):
    host_id: str
    host_fee_percentage: Decimal | None = None


class FeeBreakdownResponse(BaseModel):
    package_id: str
    package_name: str
    package_price: Decimal
    user_fee_amount: Decimal
    host_fee_amount: Decimal
    platform_fee_amount: Decimal
    cgst_amount: Decimal
    sgst_amount: Decimal
    total_tax: Decimal
    ticket_price: Decimal
    referral_amount: Decimal
    host_gets: Decimal
    admin_gets: Decimal

    @classmethod
    def build(cls, package_id: str, package_name: str, breakdown: FeeBreakdown):
        rounded = breakdown.rounded()
        return cls(
            package_id=package_id,
            package_name=package_name,
            **{name: value for name, value in rounded.items() if name in cls.model_fields},
        )


class FeePercentagesResponse(BaseModel):
    user: Decimal
    host: Decimal
    platform: Decimal
    cgst: Decimal
    sgst: Decimal
    referral: Decimal

    @classmethod
    def build(cls, percentages: FeePercentages):
        return cls(
            user=percentages.user,
            host=percentages.host,
            platform=percentages.platform,
            cgst=percentages.cgst,
            sgst=percentages.sgst,
            referral=percentages.referral,
        )


class EventFeesResponse(BaseModel):
    event_id: str
    percentages: FeePercentagesResponse
    packages: list[FeeBreakdownResponse]


class TicketResponse(BaseModel):
    id: str
    ticket_number: str = Field(serialization_alias="ticketNumber")
    full_name: str = Field(serialization_alias="fullName")
    age: int
    phone_number: str = Field(serialization_alias="phoneNumber")
    status: str
    ticket_price: Decimal = Field(serialization_alias="ticketPrice")
    expected_ticket_price: Decimal = Field(serialization_alias="expectedTicketPrice")
    price_matches: bool = Field(serialization_alias="priceMatches")
    event_id: str = Field(serialization_alias="eventId")
    package_id: str = Field(serialization_alias="packageId")
    booking_id: str = Field(serialization_alias="bookingId")
    verified_at: str | None = Field(default=None, serialization_alias="verifiedAt")
    verified_by: str | None = Field(default=None, serialization_alias="verifiedBy")
