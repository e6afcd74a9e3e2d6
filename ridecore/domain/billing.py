"""
Corporate billing gate.

The company record belongs to an external billing system; this module only
reads it.  Credit consumption happens in the billing cycle, never here.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .enums import CompanyStatus


@dataclass(frozen=True)
class Company:
    id: str
    name: str = ""
    credit_limit: Decimal = Decimal("0")
    used_credit: Decimal = Decimal("0")
    status: CompanyStatus = CompanyStatus.ACTIVE

    @property
    def available_credit(self) -> Decimal:
        return self.credit_limit - self.used_credit


def can_book(company: Company, estimated_price: Decimal) -> bool:
    """True when an active company has credit left for *estimated_price*."""
    if company.status != CompanyStatus.ACTIVE:
        return False
    return company.available_credit >= Decimal(str(estimated_price))
