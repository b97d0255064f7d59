"""Payment method configuration: commands and handler."""

from protean import handle
from protean.fields import Boolean, Float, Identifier, Integer, String

from commerce.domain import commerce
from commerce.payment_method.method import PaymentMethod, PaymentMethodType
from commerce.shared.tenancy import TenantScope


@commerce.command(part_of="PaymentMethod")
class CreatePaymentMethod:
    tenant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    code = String(max_length=100)
    method_type = String(choices=PaymentMethodType, required=True)
    is_gateway_method = Boolean(default=True)
    fee_fixed = Integer(default=0, min_value=0)
    fee_percentage = Float(default=0.0, min_value=0.0)


@commerce.command(part_of="PaymentMethod")
class SetPaymentMethodActive:
    tenant_id = Identifier(required=True)
    payment_method_id = Identifier(required=True)
    is_active = Boolean(default=True)


@commerce.command_handler(part_of=PaymentMethod)
class PaymentMethodHandler:
    @handle(CreatePaymentMethod)
    def create_payment_method(self, command):
        method = PaymentMethod.create(
            tenant_id=command.tenant_id,
            name=command.name,
            method_type=command.method_type,
            code=command.code,
            is_gateway_method=command.is_gateway_method if command.is_gateway_method is not None else True,
            fee_fixed=command.fee_fixed or 0,
            fee_percentage=command.fee_percentage or 0.0,
        )
        TenantScope(command.tenant_id).add(method)
        return str(method.id)

    @handle(SetPaymentMethodActive)
    def set_active(self, command):
        scope = TenantScope(command.tenant_id)
        method = scope.get(PaymentMethod, command.payment_method_id)
        method.set_active(bool(command.is_active))
        scope.add(method)
