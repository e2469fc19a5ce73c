"""
Config resolution: pick the single commission config that governs a sale.
"""
import logging
from typing import Iterable, Optional

from ..exceptions import AmbiguousConfigError
from ..models import CommissionConfig

logger = logging.getLogger(__name__)


def _start_key(config):
    # A config without a start date counts as the oldest.
    if config.effective_from is None:
        return 0, 0.0
    return 1, config.effective_from.timestamp()


class ConfigResolver:
    """Select the applicable config for (venue, staff, role, timestamp)."""

    @staticmethod
    def candidates(venue_id, at) -> list:
        configs = CommissionConfig.objects.filter(venue_id=venue_id, active=True)
        return [c for c in configs if c.is_effective_at(at)]

    @staticmethod
    def select(configs: Iterable[CommissionConfig], venue_id=None) -> Optional[CommissionConfig]:
        """
        Highest priority wins, then the most recent effective_from. A tie on
        both raises AmbiguousConfigError instead of guessing.
        """
        configs = list(configs)
        if not configs:
            return None

        top_priority = max(c.priority for c in configs)
        best = [c for c in configs if c.priority == top_priority]
        if len(best) > 1:
            newest = max(_start_key(c) for c in best)
            best = [c for c in best if _start_key(c) == newest]
        if len(best) > 1:
            raise AmbiguousConfigError(venue_id, best)
        return best[0]

    @classmethod
    def resolve(cls, venue_id, staff_id, staff_role, at) -> Optional[CommissionConfig]:
        config = cls.select(cls.candidates(venue_id, at), venue_id=venue_id)
        if config is None:
            logger.debug(
                "No commission config for venue=%s staff=%s role=%s at %s",
                venue_id, staff_id, staff_role, at,
            )
        else:
            logger.debug(
                "Resolved config %s (%s) for venue=%s staff=%s",
                config.pk, config.name, venue_id, staff_id,
            )
        return config
