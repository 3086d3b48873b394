"""
Customer resolution for bookings.

Booking is open to guests: the booking form's email identifies the
customer. Existing customers are matched case-insensitively; unknown
emails get a new account whose role comes from the RoleAssignmentPolicy.
"""

import logging
from uuid import UUID, uuid4

from core.config import RoleAssignmentPolicy
from core.models import Customer, CustomerContact, CustomerRole
from core.store.base import BookingStore
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class CustomerService:
    """Service for customer lookup and creation."""

    def __init__(self, store: BookingStore, roles: RoleAssignmentPolicy):
        self.store = store
        self.roles = roles

    def get_by_id(self, customer_id: UUID) -> Customer | None:
        return self.store.get_customer(customer_id)

    def get_by_email(self, email: str) -> Customer | None:
        return self.store.get_customer_by_email(email)

    def resolve_or_create_customer(self, contact: CustomerContact) -> Customer:
        """
        Existing customer for this email, or a newly created one.

        Contact details on an existing account are not overwritten from an
        anonymous booking form.
        """
        existing = self.store.get_customer_by_email(contact.email)
        if existing is not None:
            return existing

        role = CustomerRole(self.roles.role_for(contact.email))
        now = now_utc()
        customer = self.store.insert_customer(Customer(
            id=uuid4(),
            email=contact.email.lower(),
            first_name=contact.first_name,
            last_name=contact.last_name,
            phone=contact.phone,
            role=role,
            created_at=now,
            updated_at=now,
        ))

        if customer.role == CustomerRole.ADMIN:
            logger.warning("Customer %s created with admin role from role policy", customer.id)
        else:
            logger.info("Customer %s created", customer.id)
        return customer
