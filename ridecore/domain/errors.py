"""
Error taxonomy shared by every layer.

The API maps each kind to its own HTTP status, so callers can always tell
a bad request from a lost race or a storage outage.
"""

from __future__ import annotations

from typing import Optional


class RideCoreError(Exception):
    """Base class for all domain errors."""


class ValidationError(RideCoreError):
    """Malformed input to a pure function or operation."""


class ConfigurationError(ValidationError):
    """Pricing configuration has no entry for the requested service type."""


class CreditLimitExceededError(ValidationError):
    """A corporate account may not book the ride (blocked or out of credit)."""

    def __init__(self, company_id: str, estimated_price):
        self.company_id = company_id
        self.estimated_price = estimated_price
        super().__init__(
            f"Company {company_id} cannot book a ride of {estimated_price}"
        )


class NotFoundError(RideCoreError):
    """The referenced ride does not exist."""

    def __init__(self, ride_id: str):
        self.ride_id = ride_id
        super().__init__(f"Ride {ride_id} not found")


class InvalidTransitionError(RideCoreError):
    """A lifecycle transition is not allowed from the current state."""

    def __init__(
        self, ride_id: Optional[str], current: str, attempted: str
    ):
        self.ride_id = ride_id
        self.current = current
        self.attempted = attempted
        super().__init__(
            f"Cannot {attempted} ride {ride_id} in status {current}"
        )


class TransientIOError(RideCoreError):
    """Storage or messaging I/O failed; the operation did not happen."""
