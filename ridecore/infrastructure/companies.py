"""
Company directory.

Companies are owned by the corporate billing system; the ride core only
needs to look one up when a corporate ride is booked.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ridecore.domain.billing import Company


class CompanyDirectory(ABC):
    @abstractmethod
    async def get(self, company_id: str) -> Optional[Company]: ...

    @abstractmethod
    async def put(self, company: Company) -> Company: ...


class InMemoryCompanyDirectory(CompanyDirectory):
    def __init__(self, companies: Iterable[Company] = ()):
        self._companies = {c.id: c for c in companies}

    async def get(self, company_id: str) -> Optional[Company]:
        return self._companies.get(company_id)

    async def put(self, company: Company) -> Company:
        self._companies[company.id] = company
        return company
