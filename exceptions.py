"""Commission engine exceptions."""

from django.core.exceptions import ValidationError


class CommissionError(Exception):
    """Base class for commission engine errors."""


class AmbiguousConfigError(CommissionError):
    """Two or more configs tie on priority, window and effective date."""

    def __init__(self, venue_id, configs):
        self.venue_id = venue_id
        self.configs = list(configs)
        names = ', '.join(sorted(c.name for c in self.configs))
        super().__init__(
            f"Ambiguous commission configuration for venue {venue_id}: {names}"
        )


class ImmutableRecordError(CommissionError):
    """A commission calculation was modified after being recorded."""


class InvalidTransitionError(CommissionError):
    """A payout was moved to a state its current state cannot reach."""

    def __init__(self, current, target):
        self.current = current
        self.target = target
        super().__init__(f"Payout is {current}, cannot move to {target}")


class RateLockError(ValidationError):
    """Rate fields edited on a config already referenced by calculations."""
