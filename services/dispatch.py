"""
Payment-method dispatch boundary.

The engine never moves money itself. A payout entering PROCESSING is handed
to the dispatcher named by the ``COMMISSIONS_PAYMENT_DISPATCHER`` setting;
the outcome is reported back through ``CommissionService.complete_payout``
or ``CommissionService.fail_payout``.
"""
import logging

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)

DEFAULT_DISPATCHER = 'commissions.services.dispatch.ManualPaymentDispatcher'


class PaymentDispatcher:
    """Hands a payout to whatever executes its payment method."""

    def dispatch(self, payout) -> None:
        raise NotImplementedError


class ManualPaymentDispatcher(PaymentDispatcher):
    """Cash, check and payroll payouts are settled by hand."""

    def dispatch(self, payout) -> None:
        logger.info(
            "Payout %s for staff %s (%s) awaiting manual %s payment",
            payout.reference, payout.staff_id, payout.amount,
            payout.payment_method or 'unspecified',
        )


def get_payment_dispatcher() -> PaymentDispatcher:
    path = getattr(settings, 'COMMISSIONS_PAYMENT_DISPATCHER', DEFAULT_DISPATCHER)
    return import_string(path)()
