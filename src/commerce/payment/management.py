"""Merchant payment operations: refund and cancel through the gateway."""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, Integer, String

from commerce.domain import commerce
from commerce.gateway import GatewayError, get_gateway
from commerce.payment.order_sync import sync_order_with_payment
from commerce.payment.payment import Payment, PaymentStatus
from commerce.shared.tenancy import TenantScope

logger = structlog.get_logger(__name__)


@commerce.command(part_of="Payment")
class RefundPayment:
    tenant_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    amount = Integer(min_value=1)  # cents; omit for a full refund
    description = String(max_length=500)


@commerce.command(part_of="Payment")
class CancelPayment:
    tenant_id = Identifier(required=True)
    payment_id = Identifier(required=True)
    reason = String(max_length=500)


@commerce.command_handler(part_of=Payment)
class ManagePaymentHandler:
    @handle(RefundPayment)
    def refund(self, command):
        scope = TenantScope(command.tenant_id)
        payment = scope.get(Payment, command.payment_id)

        # Validate locally before asking the gateway to move money
        remaining = (payment.amount or 0) - (payment.refunded_amount or 0)
        amount = command.amount if command.amount is not None else remaining
        if not payment.is_settled and PaymentStatus(payment.status) != PaymentStatus.PARTIALLY_REFUNDED:
            raise ValidationError({"status": ["Only confirmed or received payments can be refunded"]})
        if amount <= 0 or amount > remaining:
            raise ValidationError({"amount": ["Refund amount must be positive and within what is left to refund"]})

        try:
            result = get_gateway().refund_payment(
                payment.gateway_payment_id,
                amount=amount,
                description=command.description,
            )
        except GatewayError as exc:
            logger.error("Gateway refund failed", payment_id=str(payment.id), error=exc.message)
            raise ValidationError({"gateway": [f"Refund failed: {exc.message}"]}) from exc

        payment.refund(amount, description=command.description, gateway_refund_id=result.id)
        scope.add(payment)
        sync_order_with_payment(payment, refund_amount=amount)
        return payment.status

    @handle(CancelPayment)
    def cancel(self, command):
        scope = TenantScope(command.tenant_id)
        payment = scope.get(Payment, command.payment_id)
        if PaymentStatus(payment.status) != PaymentStatus.PENDING:
            raise ValidationError({"status": ["Only pending payments can be cancelled"]})

        try:
            get_gateway().cancel_payment(payment.gateway_payment_id)
        except GatewayError as exc:
            logger.error("Gateway cancellation failed", payment_id=str(payment.id), error=exc.message)
            raise ValidationError({"gateway": [f"Cancellation failed: {exc.message}"]}) from exc

        payment.cancel(reason=command.reason)
        scope.add(payment)
