"""
Customer services for the Autoparts Commerce Platform.
Customer lookup and admin changes to a customer's pricing class.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from apps.customers.models import Customer, CustomerTypeChange
from apps.customers.signals import CustomerTypeChanged, customer_type_changed

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser

logger = logging.getLogger(__name__)


class CustomerNotFoundError(LookupError):
    """Raised when a customer id does not reference a live customer record"""

    def __init__(self, customer_id: int | None) -> None:
        super().__init__(f"Customer {customer_id} not found")
        self.customer_id = customer_id


class CustomerService:
    """Read access to customer records"""

    @staticmethod
    def find_customer(customer_id: int | None) -> Customer | None:
        """Return the live customer for `customer_id`, or None when absent or soft-deleted"""
        if customer_id is None:
            return None
        return Customer.objects.filter(pk=customer_id).first()

    @classmethod
    def get_customer(cls, customer_id: int | None) -> Customer:
        customer = cls.find_customer(customer_id)
        if customer is None:
            raise CustomerNotFoundError(customer_id)
        return customer


class CustomerTypeService:
    """Admin operations that change which price column a customer sees"""

    @staticmethod
    @transaction.atomic
    def change_customer_type(
        customer_id: int,
        new_type: str,
        changed_by: AbstractBaseUser | None = None,
        reason: str = "",
    ) -> Customer:
        """
        Switch a customer between normal and merchant pricing.

        Writes a CustomerTypeChange audit row and sends `customer_type_changed`
        once the surrounding transaction commits. Setting the current type
        again is a no-op and sends nothing.
        """
        valid_types = {choice for choice, _label in Customer.CUSTOMER_TYPE_CHOICES}
        if new_type not in valid_types:
            raise ValueError(f"Invalid customer type: {new_type}")

        try:
            customer = Customer.objects.select_for_update().get(pk=customer_id)
        except Customer.DoesNotExist as e:
            raise CustomerNotFoundError(customer_id) from e

        old_type = customer.customer_type
        if old_type == new_type:
            logger.info(
                f"ℹ️ [Customer] Type unchanged for customer {customer_id}: {new_type}",
                extra={"customer_id": customer_id, "customer_type": new_type},
            )
            return customer

        customer.customer_type = new_type
        customer.save(update_fields=["customer_type", "updated_at"])

        CustomerTypeChange.objects.create(
            customer=customer,
            old_type=old_type,
            new_type=new_type,
            changed_by=changed_by,
            reason=reason,
        )

        event = CustomerTypeChanged(
            customer_id=customer.pk,
            old_type=old_type,
            new_type=new_type,
            changed_by_id=changed_by.pk if changed_by is not None else None,
        )
        transaction.on_commit(lambda: customer_type_changed.send(sender=Customer, event=event))

        logger.info(
            f"🔄 [Customer] Type changed for customer {customer_id}: {old_type} -> {new_type}",
            extra={
                "customer_id": customer_id,
                "old_type": old_type,
                "new_type": new_type,
                "changed_by": event.changed_by_id,
            },
        )
        return customer
