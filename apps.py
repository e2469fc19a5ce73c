from django.apps import AppConfig


class CommissionsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "commissions"
    verbose_name = "Commissions"

    # =========================================================================
    # HOOK HELPER METHODS
    # =========================================================================

    @staticmethod
    def do_after_sale_complete(sale):
        """Called by the sales module once a sale is completed."""
        from .services import CommissionService

        return CommissionService.calculate_commission(sale)
