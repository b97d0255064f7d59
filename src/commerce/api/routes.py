"""FastAPI routes for the Commerce domain.

Every tenant-owned route reads the tenant from the ``X-Tenant-ID`` header,
which an upstream gateway has already authenticated and resolved.

Routes that reach the payment gateway are plain ``def``: gateway calls block,
so FastAPI runs them in its threadpool instead of on the event loop.
"""

import json
import os

from fastapi import APIRouter, Body, Depends, Header, HTTPException
from protean.utils.globals import current_domain

from commerce.api.schemas import (
    ActivationRequest,
    AddressSchema,
    AddToCartRequest,
    AdminNoteRequest,
    ApplyCouponRequest,
    ApplyShippingRequest,
    AttachUserRequest,
    CancelOrderRequest,
    CancelPaymentRequest,
    CancelSubscriptionRequest,
    CartIdResponse,
    CartItemResponse,
    CartResponse,
    ChangePlanRequest,
    CheckoutRequest,
    CheckoutResponse,
    ConvertTrialRequest,
    CountResponse,
    CreateCartRequest,
    CreateSubscriptionRequest,
    GatewayConfigRequest,
    GatewayConfigResponse,
    ItemIdResponse,
    OrderItemResponse,
    OrderResponse,
    PaymentIdResponse,
    PaymentLinkResponse,
    PaymentMethodIdResponse,
    PaymentMethodRequest,
    PaymentMethodResponse,
    PaymentResponse,
    RefundOrderRequest,
    RefundPaymentRequest,
    ReorderRequest,
    SetTaxRequest,
    ShippingMethodIdResponse,
    ShippingMethodRequest,
    ShippingPriceResponse,
    ShippingQuoteResponse,
    ShippingRulesRequest,
    StatusResponse,
    SubscriptionIdResponse,
    SubscriptionResponse,
    TrackingRequest,
    TransactionResponse,
    UpdateCartQuantityRequest,
    UpdateFulfillmentStatusRequest,
    UpdateItemStatusRequest,
    UpdateOrderStatusRequest,
    UpdatePaymentStatusRequest,
    WebhookResponse,
)
from commerce.cart.abandonment import DetectAbandonedCarts
from commerce.cart.cart import AddressType, Cart
from commerce.cart.items import AddToCart, ClearCart, RemoveFromCart, UpdateCartItemQuantity
from commerce.cart.management import (
    ApplyCoupon,
    ApplyShippingMethod,
    AttachCartUser,
    CreateCart,
    RemoveCoupon,
    SetCartAddress,
    SetCartTax,
    StartCheckout,
)
from commerce.checkout.payment import InitiateOrderPayment
from commerce.checkout.service import available_payment_methods, checkout_cart, shipping_options_for_cart
from commerce.gateway import get_gateway
from commerce.gateway.fake_adapter import FakeGateway
from commerce.order.management import (
    AddOrderAdminNote,
    AddOrderTracking,
    CancelOrder,
    RefundOrder,
    UpdateOrderFulfillmentStatus,
    UpdateOrderItemStatus,
    UpdateOrderPaymentStatus,
    UpdateOrderStatus,
)
from commerce.order.order import Order
from commerce.order.queries import find_by_order_number, list_orders
from commerce.payment.management import CancelPayment, RefundPayment
from commerce.payment.payment import Payment
from commerce.payment.queries import list_payments, list_transactions
from commerce.payment_method.management import CreatePaymentMethod, SetPaymentMethodActive
from commerce.reconciliation.service import reconcile_event, reconcile_events
from commerce.shared.money import from_cents, to_cents
from commerce.shared.tenancy import TenantScope
from commerce.shipping.management import (
    CreateShippingMethod,
    ReorderShippingMethods,
    ReplaceShippingRules,
    SetShippingMethodActive,
)
from commerce.subscription.billing import ProcessRenewals, ProcessTrialEndings
from commerce.subscription.management import (
    CancelSubscription,
    ChangeSubscriptionPlan,
    ConvertTrialToActive,
    CreateSubscription,
)
from commerce.subscription.queries import list_subscriptions
from commerce.subscription.subscription import Subscription

# Rule keys carrying money, converted to cents on the way in
_RULE_MONEY_KEYS = ("price", "min_order_value", "max_order_value")


def tenant_id(x_tenant_id: str = Header(min_length=1)) -> str:
    return x_tenant_id


def _optional_cents(value):
    return to_cents(value) if value is not None else None


def _rules_json(rules):
    if rules is None:
        return None
    converted = []
    for rule in rules:
        rule = dict(rule)
        for key in _RULE_MONEY_KEYS:
            if rule.get(key) is not None:
                rule[key] = to_cents(rule[key])
        converted.append(rule)
    return json.dumps(converted)


def _cart_response(cart) -> CartResponse:
    return CartResponse(
        id=str(cart.id),
        status=cart.status,
        user_id=cart.user_id,
        session_id=cart.session_id,
        items=[
            CartItemResponse(
                id=str(item.id),
                product_id=str(item.product_id),
                variant_id=item.variant_id,
                name=item.name,
                sku=item.sku,
                unit_price=from_cents(item.unit_price),
                quantity=item.quantity,
                line_total=from_cents(item.line_total),
                weight=item.weight or 0.0,
                requires_shipping=item.requires_shipping,
                is_digital=item.is_digital,
                is_service=item.is_service,
            )
            for item in cart.items
        ],
        item_count=cart.item_count or 0,
        shipping_address=cart.shipping_address.to_dict() if cart.shipping_address else None,
        billing_address=cart.billing_address.to_dict() if cart.billing_address else None,
        shipping_method_id=cart.shipping_method_id,
        coupon_code=cart.coupon_code,
        subtotal=from_cents(cart.subtotal),
        shipping_amount=from_cents(cart.shipping_amount),
        tax_amount=from_cents(cart.tax_amount),
        discount_amount=from_cents(cart.discount_amount),
        total=from_cents(cart.total),
    )


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        id=str(order.id),
        order_number=order.order_number,
        status=order.status,
        payment_status=order.payment_status,
        fulfillment_status=order.fulfillment_status,
        items=[
            OrderItemResponse(
                id=str(item.id),
                product_id=str(item.product_id),
                variant_id=item.variant_id,
                name=item.name,
                sku=item.sku,
                unit_price=from_cents(item.unit_price),
                quantity=item.quantity,
                total_price=from_cents(item.total_price),
                item_status=item.item_status,
            )
            for item in order.items
        ],
        subtotal=from_cents(order.subtotal),
        shipping_amount=from_cents(order.shipping_amount),
        tax_amount=from_cents(order.tax_amount),
        discount_amount=from_cents(order.discount_amount),
        total=from_cents(order.total),
        refunded_amount=from_cents(order.refunded_amount),
        payment_method_id=order.payment_method_id,
        payment_transaction_id=order.payment_transaction_id,
        tracking_number=order.tracking_number,
        cancel_reason=order.cancel_reason,
        created_at=order.created_at,
    )


def _payment_response(payment) -> PaymentResponse:
    return PaymentResponse(
        id=str(payment.id),
        payment_type=payment.payment_type,
        order_id=payment.order_id,
        subscription_id=payment.subscription_id,
        status=payment.status,
        amount=from_cents(payment.amount),
        refunded_amount=from_cents(payment.refunded_amount),
        due_date=payment.due_date,
        gateway_payment_id=payment.gateway_payment_id,
        gateway_url=payment.gateway_url,
        external_reference=payment.external_reference,
        transactions=[_transaction_response(payment, t) for t in payment.transactions],
    )


def _transaction_response(payment, transaction) -> TransactionResponse:
    return TransactionResponse(
        id=str(transaction.id),
        payment_id=str(payment.id),
        transaction_type=transaction.transaction_type,
        status=transaction.status,
        amount=from_cents(transaction.amount),
        description=transaction.description,
        gateway_transaction_id=transaction.gateway_transaction_id,
        created_at=transaction.created_at,
    )


def _subscription_response(subscription) -> SubscriptionResponse:
    return SubscriptionResponse(
        id=str(subscription.id),
        plan_id=subscription.plan_id,
        plan_name=subscription.plan_name,
        status=subscription.status,
        cycle=subscription.cycle,
        amount=from_cents(subscription.amount),
        start_date=subscription.start_date,
        trial_end_date=subscription.trial_end_date,
        next_billing_date=subscription.next_billing_date,
        last_payment_date=subscription.last_payment_date,
        total_payments=subscription.total_payments or 0,
        failed_payments=subscription.failed_payments or 0,
        gateway_subscription_id=subscription.gateway_subscription_id,
    )


# ---------------------------------------------------------------------------
# Cart Router
# ---------------------------------------------------------------------------
cart_router = APIRouter(prefix="/carts", tags=["carts"])


@cart_router.post("", status_code=201, response_model=CartIdResponse)
async def create_cart(body: CreateCartRequest, tenant: str = Depends(tenant_id)) -> CartIdResponse:
    """Return the open cart for the user or session, creating it if needed."""
    command = CreateCart(tenant_id=tenant, user_id=body.user_id, session_id=body.session_id)
    result = current_domain.process(command, asynchronous=False)
    return CartIdResponse(cart_id=result)


@cart_router.get("/{cart_id}", response_model=CartResponse)
async def get_cart(cart_id: str, tenant: str = Depends(tenant_id)) -> CartResponse:
    return _cart_response(TenantScope(tenant).get(Cart, cart_id))


@cart_router.put("/{cart_id}/user", response_model=StatusResponse)
async def attach_cart_user(cart_id: str, body: AttachUserRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(AttachCartUser(tenant_id=tenant, cart_id=cart_id, user_id=body.user_id), asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/items", status_code=201, response_model=ItemIdResponse)
async def add_cart_item(cart_id: str, body: AddToCartRequest, tenant: str = Depends(tenant_id)) -> ItemIdResponse:
    command = AddToCart(
        tenant_id=tenant,
        cart_id=cart_id,
        product_id=body.product_id,
        variant_id=body.variant_id,
        name=body.name,
        sku=body.sku,
        unit_price=to_cents(body.unit_price),
        quantity=body.quantity,
        weight=body.weight,
        requires_shipping=body.requires_shipping,
        is_digital=body.is_digital,
        is_service=body.is_service,
    )
    item_id = current_domain.process(command, asynchronous=False)
    return ItemIdResponse(item_id=item_id)


@cart_router.put("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def update_cart_item_quantity(
    cart_id: str, item_id: str, body: UpdateCartQuantityRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = UpdateCartItemQuantity(tenant_id=tenant, cart_id=cart_id, item_id=item_id, quantity=body.quantity)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items/{item_id}", response_model=StatusResponse)
async def remove_cart_item(cart_id: str, item_id: str, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(RemoveFromCart(tenant_id=tenant, cart_id=cart_id, item_id=item_id), asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/items", response_model=StatusResponse)
async def clear_cart(cart_id: str, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(ClearCart(tenant_id=tenant, cart_id=cart_id), asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/addresses/{address_type}", response_model=StatusResponse)
async def set_cart_address(
    cart_id: str, address_type: AddressType, body: AddressSchema, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = SetCartAddress(
        tenant_id=tenant,
        cart_id=cart_id,
        address_type=address_type.value,
        address=json.dumps(body.model_dump()),
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.get("/{cart_id}/shipping-options", response_model=list[ShippingQuoteResponse])
async def get_shipping_options(cart_id: str, tenant: str = Depends(tenant_id)) -> list[ShippingQuoteResponse]:
    return [
        ShippingQuoteResponse(
            method_id=q.method_id,
            name=q.name,
            price=from_cents(q.price),
            estimated_delivery_days=q.estimated_delivery_days,
        )
        for q in shipping_options_for_cart(tenant, cart_id)
    ]


@cart_router.put("/{cart_id}/shipping", response_model=ShippingPriceResponse)
async def apply_cart_shipping(
    cart_id: str, body: ApplyShippingRequest, tenant: str = Depends(tenant_id)
) -> ShippingPriceResponse:
    command = ApplyShippingMethod(tenant_id=tenant, cart_id=cart_id, shipping_method_id=body.shipping_method_id)
    price = current_domain.process(command, asynchronous=False)
    return ShippingPriceResponse(shipping_amount=from_cents(price))


@cart_router.post("/{cart_id}/coupon", response_model=StatusResponse)
async def apply_cart_coupon(cart_id: str, body: ApplyCouponRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    command = ApplyCoupon(
        tenant_id=tenant,
        cart_id=cart_id,
        coupon_code=body.coupon_code,
        discount_amount=to_cents(body.discount_amount),
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.delete("/{cart_id}/coupon", response_model=StatusResponse)
async def remove_cart_coupon(cart_id: str, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(RemoveCoupon(tenant_id=tenant, cart_id=cart_id), asynchronous=False)
    return StatusResponse()


@cart_router.put("/{cart_id}/tax", response_model=StatusResponse)
async def set_cart_tax(cart_id: str, body: SetTaxRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    command = SetCartTax(tenant_id=tenant, cart_id=cart_id, tax_amount=to_cents(body.tax_amount))
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/start-checkout", response_model=StatusResponse)
async def start_cart_checkout(cart_id: str, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(StartCheckout(tenant_id=tenant, cart_id=cart_id), asynchronous=False)
    return StatusResponse()


@cart_router.post("/{cart_id}/checkout", status_code=201, response_model=CheckoutResponse)
def checkout(cart_id: str, body: CheckoutRequest, tenant: str = Depends(tenant_id)) -> CheckoutResponse:
    """Place an order from the cart and start collecting its payment."""
    result = checkout_cart(
        tenant,
        cart_id,
        body.payment_method_id,
        customer=body.customer.model_dump(),
        notes=body.notes,
        installments=body.installments,
    )
    return CheckoutResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        total=from_cents(result.total),
        payment_id=result.payment_id,
        payment_url=result.payment_url,
    )


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.get("", response_model=list[OrderResponse])
async def get_orders(status: str | None = None, tenant: str = Depends(tenant_id)) -> list[OrderResponse]:
    return [_order_response(order) for order in list_orders(tenant, status=status)]


@order_router.get("/by-number/{order_number}", response_model=OrderResponse)
async def get_order_by_number(order_number: str, tenant: str = Depends(tenant_id)) -> OrderResponse:
    return _order_response(find_by_order_number(tenant, order_number))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(order_id: str, tenant: str = Depends(tenant_id)) -> OrderResponse:
    return _order_response(TenantScope(tenant).get(Order, order_id))


@order_router.post("/{order_id}/payment", response_model=PaymentIdResponse)
def initiate_order_payment(order_id: str, tenant: str = Depends(tenant_id)) -> PaymentIdResponse:
    """Start (or retry) collecting payment; returns the live payment if there is one."""
    payment_id = current_domain.process(InitiateOrderPayment(tenant_id=tenant, order_id=order_id), asynchronous=False)
    return PaymentIdResponse(payment_id=payment_id)


@order_router.put("/{order_id}/status", response_model=StatusResponse)
async def update_order_status(
    order_id: str, body: UpdateOrderStatusRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    current_domain.process(UpdateOrderStatus(tenant_id=tenant, order_id=order_id, status=body.status), asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/payment-status", response_model=StatusResponse)
async def update_order_payment_status(
    order_id: str, body: UpdatePaymentStatusRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = UpdateOrderPaymentStatus(tenant_id=tenant, order_id=order_id, payment_status=body.payment_status)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/fulfillment-status", response_model=StatusResponse)
async def update_order_fulfillment_status(
    order_id: str, body: UpdateFulfillmentStatusRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = UpdateOrderFulfillmentStatus(
        tenant_id=tenant, order_id=order_id, fulfillment_status=body.fulfillment_status
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.put("/{order_id}/items/{item_id}/status", response_model=StatusResponse)
async def update_order_item_status(
    order_id: str, item_id: str, body: UpdateItemStatusRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = UpdateOrderItemStatus(tenant_id=tenant, order_id=order_id, item_id=item_id, status=body.status)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/cancel", response_model=StatusResponse)
async def cancel_order(order_id: str, body: CancelOrderRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(CancelOrder(tenant_id=tenant, order_id=order_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status="cancelled")


@order_router.post("/{order_id}/refund", response_model=StatusResponse)
async def refund_order(order_id: str, body: RefundOrderRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    command = RefundOrder(tenant_id=tenant, order_id=order_id, amount=to_cents(body.amount), reason=body.reason)
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@order_router.post("/{order_id}/tracking", response_model=StatusResponse)
async def add_order_tracking(order_id: str, body: TrackingRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    command = AddOrderTracking(
        tenant_id=tenant,
        order_id=order_id,
        tracking_number=body.tracking_number,
        tracking_url=body.tracking_url,
        estimated_delivery_date=body.estimated_delivery_date,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@order_router.post("/{order_id}/notes", response_model=StatusResponse)
async def add_order_note(order_id: str, body: AdminNoteRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    current_domain.process(AddOrderAdminNote(tenant_id=tenant, order_id=order_id, note=body.note), asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.get("", response_model=list[PaymentResponse])
async def get_payments(
    order_id: str | None = None,
    subscription_id: str | None = None,
    status: str | None = None,
    tenant: str = Depends(tenant_id),
) -> list[PaymentResponse]:
    payments = list_payments(tenant, order_id=order_id, subscription_id=subscription_id, status=status)
    return [_payment_response(payment) for payment in payments]


@payment_router.get("/transactions", response_model=list[TransactionResponse])
async def get_tenant_transactions(
    transaction_type: str | None = None, tenant: str = Depends(tenant_id)
) -> list[TransactionResponse]:
    entries = list_transactions(tenant, transaction_type=transaction_type)
    return [_transaction_response(payment, transaction) for payment, transaction in entries]


@payment_router.get("/{payment_id}", response_model=PaymentResponse)
async def get_payment(payment_id: str, tenant: str = Depends(tenant_id)) -> PaymentResponse:
    return _payment_response(TenantScope(tenant).get(Payment, payment_id))


@payment_router.get("/{payment_id}/transactions", response_model=list[TransactionResponse])
async def get_payment_transactions(
    payment_id: str, transaction_type: str | None = None, tenant: str = Depends(tenant_id)
) -> list[TransactionResponse]:
    entries = list_transactions(tenant, payment_id=payment_id, transaction_type=transaction_type)
    return [_transaction_response(payment, transaction) for payment, transaction in entries]


@payment_router.get("/{payment_id}/link", response_model=PaymentLinkResponse)
async def get_payment_link(payment_id: str, tenant: str = Depends(tenant_id)) -> PaymentLinkResponse:
    """Hosted payment page at the gateway."""
    payment = TenantScope(tenant).get(Payment, payment_id)
    return PaymentLinkResponse(payment_id=str(payment.id), payment_url=payment.gateway_url)


@payment_router.post("/{payment_id}/refund", response_model=StatusResponse)
def refund_payment(
    payment_id: str, body: RefundPaymentRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = RefundPayment(
        tenant_id=tenant,
        payment_id=payment_id,
        amount=_optional_cents(body.amount),
        description=body.description,
    )
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


@payment_router.post("/{payment_id}/cancel", response_model=StatusResponse)
def cancel_payment(
    payment_id: str, body: CancelPaymentRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    current_domain.process(CancelPayment(tenant_id=tenant, payment_id=payment_id, reason=body.reason), asynchronous=False)
    return StatusResponse(status="cancelled")


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: GatewayConfigRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )


# ---------------------------------------------------------------------------
# Subscription Router
# ---------------------------------------------------------------------------
subscription_router = APIRouter(prefix="/subscriptions", tags=["subscriptions"])


@subscription_router.post("", status_code=201, response_model=SubscriptionIdResponse)
def create_subscription(
    body: CreateSubscriptionRequest, tenant: str = Depends(tenant_id)
) -> SubscriptionIdResponse:
    command = CreateSubscription(
        tenant_id=tenant,
        plan_id=body.plan_id,
        plan_name=body.plan_name,
        amount=to_cents(body.amount),
        cycle=body.cycle,
        user_id=body.user_id,
        customer_id=body.customer.customer_id,
        customer_name=body.customer.name,
        customer_email=body.customer.email,
        payment_method=body.payment_method,
        start_date=body.start_date,
        is_trial=body.is_trial,
        trial_days=body.trial_days,
    )
    subscription_id = current_domain.process(command, asynchronous=False)
    return SubscriptionIdResponse(subscription_id=subscription_id)


@subscription_router.get("", response_model=list[SubscriptionResponse])
async def get_subscriptions(
    status: str | None = None, user_id: str | None = None, tenant: str = Depends(tenant_id)
) -> list[SubscriptionResponse]:
    return [_subscription_response(s) for s in list_subscriptions(tenant, status=status, user_id=user_id)]


@subscription_router.get("/{subscription_id}", response_model=SubscriptionResponse)
async def get_subscription(subscription_id: str, tenant: str = Depends(tenant_id)) -> SubscriptionResponse:
    return _subscription_response(TenantScope(tenant).get(Subscription, subscription_id))


@subscription_router.post("/{subscription_id}/convert", response_model=StatusResponse)
def convert_trial(
    subscription_id: str, body: ConvertTrialRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = ConvertTrialToActive(
        tenant_id=tenant, subscription_id=subscription_id, payment_method=body.payment_method
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse(status="active")


@subscription_router.put("/{subscription_id}/plan", response_model=StatusResponse)
def change_plan(subscription_id: str, body: ChangePlanRequest, tenant: str = Depends(tenant_id)) -> StatusResponse:
    command = ChangeSubscriptionPlan(
        tenant_id=tenant,
        subscription_id=subscription_id,
        plan_id=body.plan_id,
        plan_name=body.plan_name,
        amount=to_cents(body.amount),
        cycle=body.cycle,
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@subscription_router.post("/{subscription_id}/cancel", response_model=StatusResponse)
def cancel_subscription(
    subscription_id: str, body: CancelSubscriptionRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = CancelSubscription(tenant_id=tenant, subscription_id=subscription_id, reason=body.reason)
    status = current_domain.process(command, asynchronous=False)
    return StatusResponse(status=status)


# ---------------------------------------------------------------------------
# Shipping Method Router
# ---------------------------------------------------------------------------
shipping_method_router = APIRouter(prefix="/shipping-methods", tags=["shipping-methods"])


@shipping_method_router.post("", status_code=201, response_model=ShippingMethodIdResponse)
async def create_shipping_method(
    body: ShippingMethodRequest, tenant: str = Depends(tenant_id)
) -> ShippingMethodIdResponse:
    command = CreateShippingMethod(
        tenant_id=tenant,
        name=body.name,
        code=body.code,
        description=body.description,
        method_type=body.method_type,
        sort_order=body.sort_order,
        base_price=to_cents(body.base_price),
        min_order_value=_optional_cents(body.min_order_value),
        max_order_value=_optional_cents(body.max_order_value),
        free_shipping_threshold=_optional_cents(body.free_shipping_threshold),
        weight_rules=_rules_json(body.weight_rules),
        price_rules=_rules_json(body.price_rules),
        location_rules=_rules_json(body.location_rules),
        estimated_delivery_days=body.estimated_delivery_days,
        is_active=body.is_active,
    )
    method_id = current_domain.process(command, asynchronous=False)
    return ShippingMethodIdResponse(shipping_method_id=method_id)


@shipping_method_router.put("/{shipping_method_id}/rules", response_model=StatusResponse)
async def replace_shipping_rules(
    shipping_method_id: str, body: ShippingRulesRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = ReplaceShippingRules(
        tenant_id=tenant,
        shipping_method_id=shipping_method_id,
        weight_rules=_rules_json(body.weight_rules),
        price_rules=_rules_json(body.price_rules),
        location_rules=_rules_json(body.location_rules),
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipping_method_router.put("/{shipping_method_id}/active", response_model=StatusResponse)
async def set_shipping_method_active(
    shipping_method_id: str, body: ActivationRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = SetShippingMethodActive(
        tenant_id=tenant, shipping_method_id=shipping_method_id, is_active=body.is_active
    )
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


@shipping_method_router.put("/order", response_model=CountResponse)
async def reorder_shipping_methods(body: ReorderRequest, tenant: str = Depends(tenant_id)) -> CountResponse:
    command = ReorderShippingMethods(tenant_id=tenant, method_ids=json.dumps(body.method_ids))
    count = current_domain.process(command, asynchronous=False)
    return CountResponse(processed=count)


# ---------------------------------------------------------------------------
# Payment Method Router
# ---------------------------------------------------------------------------
payment_method_router = APIRouter(prefix="/payment-methods", tags=["payment-methods"])


@payment_method_router.post("", status_code=201, response_model=PaymentMethodIdResponse)
async def create_payment_method(
    body: PaymentMethodRequest, tenant: str = Depends(tenant_id)
) -> PaymentMethodIdResponse:
    command = CreatePaymentMethod(
        tenant_id=tenant,
        name=body.name,
        code=body.code,
        method_type=body.method_type,
        is_gateway_method=body.is_gateway_method,
        fee_fixed=to_cents(body.fee_fixed),
        fee_percentage=body.fee_percentage,
    )
    method_id = current_domain.process(command, asynchronous=False)
    return PaymentMethodIdResponse(payment_method_id=method_id)


@payment_method_router.get("", response_model=list[PaymentMethodResponse])
async def get_payment_methods(tenant: str = Depends(tenant_id)) -> list[PaymentMethodResponse]:
    """Active payment methods offered at checkout."""
    return [
        PaymentMethodResponse(
            id=str(m.id),
            name=m.name,
            code=m.code,
            method_type=m.method_type,
            is_active=m.is_active,
            is_gateway_method=m.is_gateway_method,
        )
        for m in available_payment_methods(tenant)
    ]


@payment_method_router.put("/{payment_method_id}/active", response_model=StatusResponse)
async def set_payment_method_active(
    payment_method_id: str, body: ActivationRequest, tenant: str = Depends(tenant_id)
) -> StatusResponse:
    command = SetPaymentMethodActive(tenant_id=tenant, payment_method_id=payment_method_id, is_active=body.is_active)
    current_domain.process(command, asynchronous=False)
    return StatusResponse()


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def _verify_gateway_token(asaas_access_token: str = Header(default="")) -> None:
    if not get_gateway().verify_webhook_token(asaas_access_token):
        raise HTTPException(status_code=401, detail="Invalid webhook token")


@webhook_router.post("/gateway", response_model=WebhookResponse, dependencies=[Depends(_verify_gateway_token)])
def gateway_webhook(payload: dict = Body(...)) -> WebhookResponse:
    """Apply a gateway notification.

    Answers 200 for every well-formed event, including ones that were
    duplicates or could not be matched, so the gateway stops retrying.
    """
    outcome = reconcile_event(payload)
    return WebhookResponse(outcome=outcome)


@webhook_router.post(
    "/gateway/batch", response_model=list[WebhookResponse], dependencies=[Depends(_verify_gateway_token)]
)
def gateway_webhook_batch(payloads: list[dict] = Body(...)) -> list[WebhookResponse]:
    return [WebhookResponse(outcome=outcome) for outcome in reconcile_events(payloads)]


# ---------------------------------------------------------------------------
# Maintenance Router (external scheduler)
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(prefix="/maintenance", tags=["maintenance"])


@maintenance_router.post("/abandoned-carts", response_model=CountResponse)
async def detect_abandoned_carts(idle_threshold_hours: int | None = None) -> CountResponse:
    count = current_domain.process(
        DetectAbandonedCarts(idle_threshold_hours=idle_threshold_hours), asynchronous=False
    )
    return CountResponse(processed=count)


@maintenance_router.post("/subscription-renewals", response_model=CountResponse)
async def process_renewals() -> CountResponse:
    return CountResponse(processed=current_domain.process(ProcessRenewals(), asynchronous=False))


@maintenance_router.post("/trial-endings", response_model=CountResponse)
async def process_trial_endings() -> CountResponse:
    return CountResponse(processed=current_domain.process(ProcessTrialEndings(), asynchronous=False))
