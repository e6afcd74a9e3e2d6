"""Tests for the corporate credit gate."""

from decimal import Decimal

import pytest

from ridecore.domain.billing import Company, can_book
from ridecore.domain.enums import CompanyStatus


def _company(limit="100", used="80", status=CompanyStatus.ACTIVE):
    return Company(
        id="acme",
        credit_limit=Decimal(limit),
        used_credit=Decimal(used),
        status=status,
    )


class TestCanBook:
    def test_within_available_credit(self):
        assert can_book(_company(), Decimal("15"))

    def test_above_available_credit(self):
        assert not can_book(_company(), Decimal("25"))

    def test_exactly_available_credit(self):
        assert can_book(_company(), Decimal("20"))

    @pytest.mark.parametrize("status", [CompanyStatus.BLOCKED, CompanyStatus.PENDING])
    def test_inactive_company(self, status):
        assert not can_book(_company(used="0", status=status), Decimal("1"))

    def test_accepts_float_price(self):
        assert can_book(_company(), 19.99)

    def test_available_credit(self):
        assert _company().available_credit == Decimal("20")
