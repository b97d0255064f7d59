"""Tenant-scoped repository access.

Command handlers never call ``repository_for`` directly for tenant-owned
aggregates; they go through a ``TenantScope``, which cannot exist without a
tenant id and which treats another tenant's aggregate exactly like a missing
one.
"""

from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain


@dataclass(frozen=True)
class TenantScope:
    tenant_id: str

    def __post_init__(self):
        if not self.tenant_id or not str(self.tenant_id).strip():
            raise ValidationError({"tenant_id": ["A tenant is required"]})

    def get(self, aggregate_cls, identifier):
        """Load an aggregate owned by this tenant, or raise ``ObjectNotFoundError``."""
        not_found = ObjectNotFoundError(f"{aggregate_cls.__name__} `{identifier}` not found")
        if not identifier:
            raise not_found
        try:
            aggregate = current_domain.repository_for(aggregate_cls).get(identifier)
        except ObjectNotFoundError:
            raise not_found from None

        if str(aggregate.tenant_id) != str(self.tenant_id):
            raise not_found
        return aggregate

    def filter(self, aggregate_cls, **filters):
        """All aggregates of this tenant matching ``filters``."""
        repo = current_domain.repository_for(aggregate_cls)
        return repo._dao.query.filter(tenant_id=self.tenant_id, **filters).all().items

    def first(self, aggregate_cls, **filters):
        results = self.filter(aggregate_cls, **filters)
        return results[0] if results else None

    def add(self, aggregate):
        if str(aggregate.tenant_id) != str(self.tenant_id):
            raise ValidationError({"tenant_id": ["Aggregate belongs to a different tenant"]})
        current_domain.repository_for(type(aggregate)).add(aggregate)
        return aggregate
