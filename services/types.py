"""Value objects passed between the commission engine stages."""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from django.utils.dateparse import parse_datetime


@dataclass(frozen=True)
class Sale:
    """A completed sale as emitted by the order service."""

    sale_id: str
    venue_id: Any
    staff_id: Any
    base_amount: Decimal
    timestamp: datetime
    staff_role: str = ''
    tip_amount: Decimal = Decimal('0')
    tax_amount: Decimal = Decimal('0')
    discount_amount: Decimal = Decimal('0')

    def to_payload(self) -> Dict[str, str]:
        return {
            'sale_id': str(self.sale_id),
            'venue_id': str(self.venue_id),
            'staff_id': str(self.staff_id),
            'staff_role': self.staff_role,
            'base_amount': str(self.base_amount),
            'timestamp': self.timestamp.isoformat(),
            'tip_amount': str(self.tip_amount),
            'tax_amount': str(self.tax_amount),
            'discount_amount': str(self.discount_amount),
        }

    @classmethod
    def from_payload(cls, payload: Dict[str, str]) -> 'Sale':
        return cls(
            sale_id=payload['sale_id'],
            venue_id=payload['venue_id'],
            staff_id=payload['staff_id'],
            staff_role=payload.get('staff_role', ''),
            base_amount=Decimal(payload['base_amount']),
            timestamp=parse_datetime(payload['timestamp']),
            tip_amount=Decimal(payload.get('tip_amount', '0')),
            tax_amount=Decimal(payload.get('tax_amount', '0')),
            discount_amount=Decimal(payload.get('discount_amount', '0')),
        )


@dataclass(frozen=True)
class PeriodTotals:
    """Staff sales in one period bucket, as seen before the current sale."""

    bucket: str
    amount: Decimal = Decimal('0')
    count: int = 0


@dataclass
class RateResult:
    rate_applied: Decimal
    gross_commission: Decimal
    outcome: str
    tier_level: Optional[int] = None
    milestones: List[int] = field(default_factory=list)


@dataclass
class OverrideResult:
    amount: Decimal
    rate_applied: Decimal
    excluded: bool = False
    override: Any = None
