"""Department and call stage enumerations."""
from enum import Enum


class Department(str, Enum):
    """Conversational personas a call can be handled by."""

    RECEPTIONIST = "receptionist"  # Answers every call and routes it
    SALES = "sales"  # Product questions, pricing, purchases
    SHIPPING = "shipping"  # Order tracking and delivery
    SUPPORT = "support"  # Technical troubleshooting
    ACCOUNTS = "accounts"  # Billing and invoices

    def __str__(self) -> str:
        """Return the string value of the department."""
        return self.value

    @property
    def display_name(self) -> str:
        return self.value.title()

    @property
    def is_specialist(self) -> bool:
        return self is not Department.RECEPTIONIST


SPECIALISTS = (
    Department.SALES,
    Department.SHIPPING,
    Department.SUPPORT,
    Department.ACCOUNTS,
)


class CallStage(str, Enum):
    """Lifecycle stage of a call while the AI is handling it."""

    ACTIVE = "active"  # A persona is answering caller turns
    ESCALATED = "escalated"  # Handed to a human, terminal for the AI
    ENDED = "ended"  # Call finished, terminal

    def __str__(self) -> str:
        """Return the string value of the stage."""
        return self.value
