"""Order payment initiation: command and handler.

Creates the charge at the gateway for an order and records it as a
Payment. Idempotent per order: while the order already has a live payment,
that payment is returned instead of charging again. This is also the retry
path after a gateway failure during checkout.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer

from commerce.config import get_settings
from commerce.domain import commerce
from commerce.gateway import GatewayError, get_gateway
from commerce.gateway.port import PaymentRequest
from commerce.order.order import Order
from commerce.payment.lookup import find_by_external_reference
from commerce.payment.payment import Payment, PaymentType
from commerce.payment_method.method import PaymentMethod
from commerce.shared.tenancy import TenantScope

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Order")
class InitiateOrderPayment:
    tenant_id = Identifier(required=True)
    order_id = Identifier(required=True)
    installments = Integer(default=1, min_value=1)


def _existing_live_payment(scope, order):
    if order.payment_transaction_id:
        payment = scope.get(Payment, order.payment_transaction_id)
        if payment.is_live:
            return payment
    payment = find_by_external_reference(str(order.id), tenant_id=scope.tenant_id)
    if payment is not None and payment.is_live:
        return payment
    return None


@commerce.command_handler(part_of=Order)
class InitiateOrderPaymentHandler:
    @handle(InitiateOrderPayment)
    def initiate_payment(self, command):
        scope = TenantScope(command.tenant_id)
        order = scope.get(Order, command.order_id)

        existing = _existing_live_payment(scope, order)
        if existing is not None:
            if order.is_awaiting_payment and str(order.payment_transaction_id or "") != str(existing.id):
                order.attach_payment(str(existing.id))
                scope.add(order)
            logger.info("Order already has a live payment", order_id=str(order.id), payment_id=str(existing.id))
            return str(existing.id)

        if not order.is_awaiting_payment:
            raise ValidationError({"status": [f"Order is {order.status} and is not awaiting payment"]})

        payment_method = scope.get(PaymentMethod, order.payment_method_id)
        if not payment_method.is_gateway_method:
            logger.info("Payment method is settled offline", order_id=str(order.id))
            return None

        settings = get_settings()
        due_date = datetime.now(UTC).date() + timedelta(days=settings.payment_due_days)
        description = f"Order #{order.order_number}"
        request = PaymentRequest(
            customer_id=order.customer_id or "",
            billing_type=payment_method.billing_type,
            amount=order.total,
            due_date=due_date,
            description=description,
            external_reference=str(order.id),
            installments=command.installments,
        )

        try:
            gateway_payment = get_gateway().create_payment(request)
        except GatewayError as exc:
            logger.error(
                "Gateway payment initiation failed",
                tenant_id=command.tenant_id,
                order_id=str(order.id),
                error=exc.message,
            )
            raise ValidationError(
                {
                    "payment": [f"Payment could not be initiated: {exc.message}"],
                    "order_id": [str(order.id)],
                }
            ) from exc

        payment = Payment.create(
            tenant_id=command.tenant_id,
            amount=order.total,
            gateway_payment=gateway_payment,
            payment_type=PaymentType.ORDER.value,
            order_id=str(order.id),
            billing_type=payment_method.billing_type,
            payment_method_id=str(payment_method.id),
            fee_amount=payment_method.calculate_fee(order.total),
            due_date=due_date,
            customer_id=order.customer_id,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            external_reference=str(order.id),
            description=description,
            installments=command.installments or 1,
        )
        order.attach_payment(str(payment.id))

        scope.add(payment)
        scope.add(order)

        logger.info(
            "Order payment initiated",
            tenant_id=command.tenant_id,
            order_id=str(order.id),
            payment_id=str(payment.id),
            gateway_payment_id=gateway_payment.id,
        )
        return str(payment.id)
