"""PaymentMethod aggregate: a way a tenant accepts money (card, boleto, pix...)."""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import Boolean, DateTime, Float, Identifier, Integer, String

from commerce.domain import commerce
from commerce.shared.money import percentage_of


class PaymentMethodType(Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    BOLETO = "boleto"
    PIX = "pix"
    BANK_TRANSFER = "bank_transfer"
    WALLET = "wallet"


# Gateway billing type for each method type; anything else is billed as undefined
GATEWAY_BILLING_TYPES = {
    PaymentMethodType.CREDIT_CARD: "CREDIT_CARD",
    PaymentMethodType.DEBIT_CARD: "DEBIT_CARD",
    PaymentMethodType.BOLETO: "BOLETO",
    PaymentMethodType.PIX: "PIX",
}


@commerce.aggregate
class PaymentMethod:
    tenant_id = Identifier(required=True)
    name = String(required=True, max_length=255)
    code = String(max_length=100)
    method_type = String(choices=PaymentMethodType, required=True)
    is_active = Boolean(default=True)
    is_gateway_method = Boolean(default=True)
    fee_fixed = Integer(default=0, min_value=0)  # cents
    fee_percentage = Float(default=0.0, min_value=0.0)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def create(cls, tenant_id, name, method_type, **options):
        now = datetime.now(UTC)
        return cls(
            tenant_id=tenant_id,
            name=name,
            method_type=method_type,
            created_at=now,
            updated_at=now,
            **options,
        )

    @property
    def billing_type(self) -> str:
        return GATEWAY_BILLING_TYPES.get(PaymentMethodType(self.method_type), "UNDEFINED")

    def calculate_fee(self, amount: int) -> int:
        """Processing fee in cents for charging ``amount`` cents."""
        return (self.fee_fixed or 0) + percentage_of(amount, self.fee_percentage or 0.0)

    def set_active(self, active: bool):
        self.is_active = active
        self.updated_at = datetime.now(UTC)
