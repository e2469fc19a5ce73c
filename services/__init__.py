from .commission_service import CommissionService
from .types import Sale

__all__ = ['CommissionService', 'Sale']
