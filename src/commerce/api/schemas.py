"""Pydantic request/response schemas for the Commerce API.

These are external contracts (anti-corruption layer), separate from the
internal Protean commands. Money crosses this boundary as decimal amounts;
the routes convert to and from integer cents.
"""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Shared sub-models
# ---------------------------------------------------------------------------
class AddressSchema(BaseModel):
    first_name: str | None = None
    last_name: str | None = None
    address1: str
    address2: str | None = None
    city: str
    state: str | None = None
    postal_code: str
    country: str
    phone: str | None = None


class CustomerSchema(BaseModel):
    customer_id: str | None = None  # customer id at the payment gateway
    email: str | None = None
    name: str | None = None
    phone: str | None = None


class StatusResponse(BaseModel):
    status: str = "ok"


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------
class CreateCartRequest(BaseModel):
    user_id: str | None = None
    session_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "user_id": "user-001",
                    "session_id": None,
                }
            ]
        }
    }


class AttachUserRequest(BaseModel):
    user_id: str


class AddToCartRequest(BaseModel):
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: Decimal = Field(ge=0)
    quantity: int = Field(ge=1, default=1)
    weight: float = Field(ge=0, default=0.0)
    requires_shipping: bool = True
    is_digital: bool = False
    is_service: bool = False


class UpdateCartQuantityRequest(BaseModel):
    quantity: int = Field(ge=0)


class ApplyShippingRequest(BaseModel):
    shipping_method_id: str


class ApplyCouponRequest(BaseModel):
    coupon_code: str
    discount_amount: Decimal = Field(ge=0)


class SetTaxRequest(BaseModel):
    tax_amount: Decimal = Field(ge=0)


class CartIdResponse(BaseModel):
    cart_id: str


class ItemIdResponse(BaseModel):
    item_id: str


class CartItemResponse(BaseModel):
    id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    weight: float
    requires_shipping: bool
    is_digital: bool
    is_service: bool


class CartResponse(BaseModel):
    id: str
    status: str
    user_id: str | None = None
    session_id: str | None = None
    items: list[CartItemResponse]
    item_count: int
    shipping_address: AddressSchema | None = None
    billing_address: AddressSchema | None = None
    shipping_method_id: str | None = None
    coupon_code: str | None = None
    subtotal: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal


class ShippingQuoteResponse(BaseModel):
    method_id: str
    name: str
    price: Decimal
    estimated_delivery_days: int | None = None


class ShippingPriceResponse(BaseModel):
    shipping_amount: Decimal


# ---------------------------------------------------------------------------
# Checkout
# ---------------------------------------------------------------------------
class CheckoutRequest(BaseModel):
    payment_method_id: str
    customer: CustomerSchema = Field(default_factory=CustomerSchema)
    notes: str | None = None
    installments: int = Field(ge=1, default=1)


class CheckoutResponse(BaseModel):
    order_id: str
    order_number: str
    total: Decimal
    payment_id: str | None = None
    payment_url: str | None = None


class PaymentIdResponse(BaseModel):
    payment_id: str | None = None


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
class UpdateOrderStatusRequest(BaseModel):
    status: str


class UpdatePaymentStatusRequest(BaseModel):
    payment_status: str


class UpdateFulfillmentStatusRequest(BaseModel):
    fulfillment_status: str


class UpdateItemStatusRequest(BaseModel):
    status: str


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class RefundOrderRequest(BaseModel):
    amount: Decimal = Field(gt=0)
    reason: str | None = None


class TrackingRequest(BaseModel):
    tracking_number: str
    tracking_url: str | None = None
    estimated_delivery_date: date | None = None


class AdminNoteRequest(BaseModel):
    note: str


class OrderItemResponse(BaseModel):
    id: str
    product_id: str
    variant_id: str | None = None
    name: str | None = None
    sku: str | None = None
    unit_price: Decimal
    quantity: int
    total_price: Decimal
    item_status: str


class OrderResponse(BaseModel):
    id: str
    order_number: str
    status: str
    payment_status: str
    fulfillment_status: str
    items: list[OrderItemResponse]
    subtotal: Decimal
    shipping_amount: Decimal
    tax_amount: Decimal
    discount_amount: Decimal
    total: Decimal
    refunded_amount: Decimal
    payment_method_id: str | None = None
    payment_transaction_id: str | None = None
    tracking_number: str | None = None
    cancel_reason: str | None = None
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Payments
# ---------------------------------------------------------------------------
class RefundPaymentRequest(BaseModel):
    amount: Decimal | None = Field(default=None, gt=0)  # omit for a full refund
    description: str | None = None


class CancelPaymentRequest(BaseModel):
    reason: str | None = None


class TransactionResponse(BaseModel):
    id: str
    payment_id: str
    transaction_type: str
    status: str
    amount: Decimal
    description: str | None = None
    gateway_transaction_id: str | None = None
    created_at: datetime | None = None


class PaymentResponse(BaseModel):
    id: str
    payment_type: str
    order_id: str | None = None
    subscription_id: str | None = None
    status: str
    amount: Decimal
    refunded_amount: Decimal
    due_date: date | None = None
    gateway_payment_id: str | None = None
    gateway_url: str | None = None
    external_reference: str | None = None
    transactions: list[TransactionResponse]


class PaymentLinkResponse(BaseModel):
    payment_id: str
    payment_url: str | None = None


# ---------------------------------------------------------------------------
# Subscriptions
# ---------------------------------------------------------------------------
class CreateSubscriptionRequest(BaseModel):
    plan_id: str
    plan_name: str
    amount: Decimal = Field(ge=0)
    cycle: str = "monthly"
    user_id: str | None = None
    customer: CustomerSchema = Field(default_factory=CustomerSchema)
    payment_method: str | None = None
    start_date: date | None = None
    is_trial: bool = False
    trial_days: int | None = Field(default=None, ge=1)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "plan_id": "pro",
                    "plan_name": "Pro",
                    "amount": "99.90",
                    "cycle": "monthly",
                    "customer": {"customer_id": "cus_000001", "email": "owner@example.com"},
                    "is_trial": True,
                    "trial_days": 15,
                }
            ]
        }
    }


class ConvertTrialRequest(BaseModel):
    payment_method: str


class ChangePlanRequest(BaseModel):
    plan_id: str
    plan_name: str
    amount: Decimal = Field(ge=0)
    cycle: str | None = None


class CancelSubscriptionRequest(BaseModel):
    reason: str | None = None


class SubscriptionIdResponse(BaseModel):
    subscription_id: str


class SubscriptionResponse(BaseModel):
    id: str
    plan_id: str
    plan_name: str
    status: str
    cycle: str
    amount: Decimal
    start_date: date | None = None
    trial_end_date: date | None = None
    next_billing_date: date | None = None
    last_payment_date: date | None = None
    total_payments: int
    failed_payments: int
    gateway_subscription_id: str | None = None


# ---------------------------------------------------------------------------
# Configuration: shipping and payment methods
# ---------------------------------------------------------------------------
class ShippingMethodRequest(BaseModel):
    name: str
    code: str | None = None
    description: str | None = None
    method_type: str = "fixed"
    sort_order: int | None = Field(default=None, ge=0)
    base_price: Decimal = Field(ge=0, default=Decimal("0"))
    min_order_value: Decimal | None = Field(default=None, ge=0)
    max_order_value: Decimal | None = Field(default=None, ge=0)
    free_shipping_threshold: Decimal | None = Field(default=None, ge=0)
    weight_rules: list[dict] = Field(default_factory=list)
    price_rules: list[dict] = Field(default_factory=list)
    location_rules: list[dict] = Field(default_factory=list)
    estimated_delivery_days: int | None = Field(default=None, ge=0)
    is_active: bool = True


class ShippingRulesRequest(BaseModel):
    weight_rules: list[dict] | None = None
    price_rules: list[dict] | None = None
    location_rules: list[dict] | None = None


class ActivationRequest(BaseModel):
    is_active: bool


class ReorderRequest(BaseModel):
    method_ids: list[str] = Field(min_length=1)


class ShippingMethodIdResponse(BaseModel):
    shipping_method_id: str


class PaymentMethodRequest(BaseModel):
    name: str
    code: str | None = None
    method_type: str
    is_gateway_method: bool = True
    fee_fixed: Decimal = Field(ge=0, default=Decimal("0"))
    fee_percentage: float = Field(ge=0, default=0.0)


class PaymentMethodIdResponse(BaseModel):
    payment_method_id: str


class PaymentMethodResponse(BaseModel):
    id: str
    name: str
    code: str | None = None
    method_type: str
    is_active: bool
    is_gateway_method: bool


# ---------------------------------------------------------------------------
# Webhooks and maintenance
# ---------------------------------------------------------------------------
class WebhookResponse(BaseModel):
    received: bool = True
    outcome: str


class CountResponse(BaseModel):
    processed: int


class GatewayConfigRequest(BaseModel):
    should_succeed: bool
    failure_reason: str = "Gateway unavailable"


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str
