"""Commissions module models."""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .base import VenueBaseModel
from .exceptions import ImmutableRecordError, InvalidTransitionError, RateLockError
from .periods import AGGREGATION_PERIOD_CHOICES, MONTHLY, TIER_PERIOD_CHOICES

CENT = Decimal('0.01')


def quantize_money(value):
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def windows_overlap(a_from, a_to, b_from, b_to):
    """Open-ended window overlap; None means unbounded on that side."""
    if a_from is not None and b_to is not None and a_from > b_to:
        return False
    if b_from is not None and a_to is not None and b_from > a_to:
        return False
    return True


def within_window(effective_from, effective_to, at):
    if effective_from is not None and at < effective_from:
        return False
    if effective_to is not None and at > effective_to:
        return False
    return True


# =============================================================================
# Settings
# =============================================================================

class CommissionsSettings(VenueBaseModel):
    """Per-venue commissions settings."""

    PAYMENT_METHOD_CHOICES = [
        ('cash', _("Cash")),
        ('bank_transfer', _("Bank Transfer")),
        ('check', _("Check")),
        ('payroll', _("Added to Payroll")),
        ('other', _("Other")),
    ]

    minimum_payout_amount = models.DecimalField(
        _("Minimum Payout Amount"), max_digits=12, decimal_places=2,
        default=Decimal('0.00'), validators=[MinValueValidator(Decimal('0'))],
        help_text=_("Payouts below this amount are not created (0 disables)")
    )
    default_payment_method = models.CharField(
        _("Default Payment Method"), max_length=20,
        choices=PAYMENT_METHOD_CHOICES, default='bank_transfer'
    )

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_settings'
        verbose_name = _("Commissions Settings")
        verbose_name_plural = _("Commissions Settings")
        constraints = [
            models.UniqueConstraint(fields=['venue_id'], name='commissions_settings_unique_venue'),
        ]

    def __str__(self):
        return f"Commissions Settings (Venue {self.venue_id})"

    @classmethod
    def get_settings(cls, venue_id):
        settings, _ = cls.all_objects.get_or_create(venue_id=venue_id)
        return settings


# =============================================================================
# Configs
# =============================================================================

class CommissionConfig(VenueBaseModel):
    """A named, time-bounded commission rule set for a venue."""

    CREATOR = 'CREATOR'
    SERVER = 'SERVER'
    PROCESSOR = 'PROCESSOR'
    RECIPIENT_CHOICES = [
        (CREATOR, _("Order Creator")),
        (SERVER, _("Server")),
        (PROCESSOR, _("Payment Processor")),
    ]

    PERCENTAGE = 'PERCENTAGE'
    FIXED = 'FIXED'
    TIERED = 'TIERED'
    MILESTONE = 'MILESTONE'
    MANUAL = 'MANUAL'
    CALC_TYPE_CHOICES = [
        (PERCENTAGE, _("Percentage")),
        (FIXED, _("Fixed Amount")),
        (TIERED, _("Tiered (based on sales volume)")),
        (MILESTONE, _("Milestone Bonus")),
        (MANUAL, _("Manual")),
    ]
    TIER_CALC_TYPES = (TIERED, MILESTONE)

    # Fields frozen once a calculation references the config
    RATE_FIELDS = (
        'calc_type', 'default_rate', 'min_amount', 'max_amount', 'role_rates',
        'include_tips', 'include_discount', 'include_tax',
    )

    name = models.CharField(_("Name"), max_length=100)
    description = models.TextField(_("Description"), blank=True)

    recipient = models.CharField(
        _("Recipient"), max_length=20, choices=RECIPIENT_CHOICES, default=SERVER
    )
    calc_type = models.CharField(
        _("Calculation Type"), max_length=20, choices=CALC_TYPE_CHOICES, default=PERCENTAGE
    )
    default_rate = models.DecimalField(
        _("Default Rate"), max_digits=12, decimal_places=4, default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))],
        help_text=_("Fraction of the sale (0.03 = 3%), or an amount for fixed configs")
    )
    min_amount = models.DecimalField(
        _("Minimum Commission"), max_digits=12, decimal_places=2, null=True, blank=True
    )
    max_amount = models.DecimalField(
        _("Maximum Commission"), max_digits=12, decimal_places=2, null=True, blank=True
    )
    role_rates = models.JSONField(
        _("Role Rates"), null=True, blank=True,
        help_text=_("Mapping of staff role to rate; mutually exclusive with tiers")
    )

    include_tips = models.BooleanField(_("Include Tips"), default=False)
    include_discount = models.BooleanField(
        _("Include Discounts"), default=False,
        help_text=_("Compute on the amount before discounts")
    )
    include_tax = models.BooleanField(_("Include Tax"), default=False)

    effective_from = models.DateTimeField(_("Effective From"), null=True, blank=True)
    effective_to = models.DateTimeField(_("Effective To"), null=True, blank=True)

    aggregation_period = models.CharField(
        _("Payout Period"), max_length=20,
        choices=AGGREGATION_PERIOD_CHOICES, default=MONTHLY
    )
    priority = models.IntegerField(
        _("Priority"), default=0,
        help_text=_("Higher priority configs win when several apply")
    )
    active = models.BooleanField(_("Active"), default=True)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_config'
        verbose_name = _("Commission Config")
        verbose_name_plural = _("Commission Configs")
        ordering = ['-priority', 'name']
        indexes = [
            models.Index(fields=['venue_id', 'active', 'priority']),
        ]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.role_rates = self.normalized_role_rates()
        super().save(*args, **kwargs)

    def normalized_role_rates(self):
        if not self.role_rates:
            return None
        normalized = {}
        for role, rate in self.role_rates.items():
            normalized[str(role).strip().upper()] = str(Decimal(str(rate)))
        return normalized

    def rate_for_role(self, role):
        """Role-specific rate if one is configured, else the default rate."""
        if self.role_rates and role:
            rate = self.role_rates.get(str(role).strip().upper())
            if rate is not None:
                return Decimal(str(rate))
        return self.default_rate

    def is_effective_at(self, at):
        return self.active and within_window(self.effective_from, self.effective_to, at)

    def commissionable_amount(self, sale):
        amount = Decimal(sale.base_amount)
        if self.include_tips:
            amount += Decimal(sale.tip_amount)
        if self.include_tax:
            amount += Decimal(sale.tax_amount)
        if self.include_discount:
            amount += Decimal(sale.discount_amount)
        return amount

    @property
    def uses_tiers(self):
        return self.calc_type in self.TIER_CALC_TYPES

    @property
    def requires_complete_ladder(self):
        """Active tiered configs must keep an unbounded top tier."""
        return self.active and self.calc_type == self.TIERED

    @property
    def is_rate_locked(self):
        if self._state.adding:
            return False
        return CommissionCalculation.all_objects.filter(config_id=self.pk).exists()

    def changed_rate_fields(self):
        if self._state.adding:
            return []
        original = CommissionConfig.all_objects.get(pk=self.pk)
        original.role_rates = original.normalized_role_rates()
        current_role_rates = self.normalized_role_rates()
        changed = []
        for field in self.RATE_FIELDS:
            if field == 'role_rates':
                if original.role_rates != current_role_rates:
                    changed.append(field)
            elif getattr(original, field) != getattr(self, field):
                changed.append(field)
        return changed

    def clean_fields(self, exclude=None):
        try:
            self.role_rates = self.normalized_role_rates()
        except (InvalidOperation, AttributeError, TypeError, ValueError):
            raise ValidationError(
                {'role_rates': _("Role rates must map role names to numeric rates")}
            )
        super().clean_fields(exclude=exclude)

    def clean(self):
        errors = {}
        if self.role_rates:
            try:
                if any(Decimal(str(rate)) < 0 for rate in self.role_rates.values()):
                    errors['role_rates'] = _("Role rates cannot be negative")
            except (InvalidOperation, AttributeError):
                errors['role_rates'] = _("Role rates must map role names to numeric rates")
            if not self._state.adding and self.tiers.filter(is_deleted=False).exists():
                errors['role_rates'] = _("Role rates and tiers are mutually exclusive")

        if self.min_amount is not None and self.min_amount < 0:
            errors['min_amount'] = _("Minimum commission cannot be negative")
        if (self.min_amount is not None and self.max_amount is not None
                and self.min_amount > self.max_amount):
            errors['max_amount'] = _("Maximum commission must be at least the minimum")
        if (self.effective_from is not None and self.effective_to is not None
                and self.effective_from > self.effective_to):
            errors['effective_to'] = _("Effective end must be after the start")

        if self.active and self.venue_id:
            clash = CommissionConfig.objects.filter(
                venue_id=self.venue_id, active=True,
                priority=self.priority, effective_from=self.effective_from,
            ).exclude(pk=self.pk)
            for other in clash:
                if windows_overlap(self.effective_from, self.effective_to,
                                   other.effective_from, other.effective_to):
                    errors['priority'] = _(
                        "Config '%(name)s' already uses this priority and start date"
                    ) % {'name': other.name}
                    break

        if self.requires_complete_ladder and not self._state.adding:
            try:
                validate_tier_set(
                    self.tiers.filter(is_deleted=False, active=True), complete=True
                )
            except ValidationError as e:
                errors['active'] = e.messages

        if errors:
            raise ValidationError(errors)

        if self.is_rate_locked:
            changed = self.changed_rate_fields()
            if changed:
                raise RateLockError(
                    _("Rate fields are locked once commissions were calculated: %(fields)s")
                    % {'fields': ', '.join(changed)}
                )


class CommissionTier(VenueBaseModel):
    """Threshold band of a tiered or milestone config."""

    BY_AMOUNT = 'BY_AMOUNT'
    BY_QUANTITY = 'BY_QUANTITY'
    TIER_TYPE_CHOICES = [
        (BY_AMOUNT, _("By Sales Amount")),
        (BY_QUANTITY, _("By Number of Sales")),
    ]

    config = models.ForeignKey(
        CommissionConfig, on_delete=models.CASCADE, related_name='tiers',
        verbose_name=_("Config")
    )
    tier_level = models.PositiveSmallIntegerField(
        _("Tier Level"), validators=[MinValueValidator(1)]
    )
    tier_name = models.CharField(_("Tier Name"), max_length=100, blank=True)
    tier_type = models.CharField(
        _("Tier Type"), max_length=20, choices=TIER_TYPE_CHOICES, default=BY_AMOUNT
    )
    min_threshold = models.DecimalField(
        _("Minimum Threshold"), max_digits=14, decimal_places=2, default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    max_threshold = models.DecimalField(
        _("Maximum Threshold"), max_digits=14, decimal_places=2, null=True, blank=True,
        help_text=_("Leave empty for the top tier")
    )
    rate = models.DecimalField(
        _("Rate"), max_digits=12, decimal_places=4, default=Decimal('0'),
        validators=[MinValueValidator(Decimal('0'))]
    )
    tier_period = models.CharField(
        _("Tier Period"), max_length=20, choices=TIER_PERIOD_CHOICES, default=MONTHLY
    )
    active = models.BooleanField(_("Active"), default=True)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_tier'
        verbose_name = _("Commission Tier")
        verbose_name_plural = _("Commission Tiers")
        ordering = ['config', 'tier_level']
        constraints = [
            models.UniqueConstraint(
                fields=['config', 'tier_level'], name='commissions_tier_unique_level'
            ),
        ]

    def __str__(self):
        return f"{self.config.name} - {self.tier_name or self.tier_level}"

    def measure(self, amount, count):
        """The aggregate value this tier's thresholds are compared against."""
        if self.tier_type == self.BY_QUANTITY:
            return Decimal(count)
        return Decimal(amount)

    def reached_by(self, value):
        return value >= self.min_threshold

    def save(self, *args, **kwargs):
        if self.venue_id is None and self.config_id:
            self.venue_id = self.config.venue_id
        super().save(*args, **kwargs)

    def check_config(self):
        config = self.config
        if not config.uses_tiers:
            raise ValidationError(_("Only tiered or milestone configs can have tiers"))
        if config.role_rates:
            raise ValidationError(_("Role rates and tiers are mutually exclusive"))
        if config.is_rate_locked:
            raise RateLockError(
                _("Tiers are locked once commissions were calculated for this config")
            )

    def clean(self):
        self.check_config()
        siblings = list(
            self.config.tiers.filter(is_deleted=False, active=True).exclude(pk=self.pk)
        )
        if self.active:
            siblings.append(self)
        validate_tier_set(siblings, complete=self.config.requires_complete_ladder)


def validate_tier_set(tiers, complete=False):
    """
    Check a config's active tiers: unique levels, contiguous ranges where each
    tier starts at the previous tier's maximum, and at most one unbounded tier
    at the top. ``complete`` additionally requires that unbounded top tier.
    """
    ordered = sorted(tiers, key=lambda t: t.tier_level)
    levels = [t.tier_level for t in ordered]
    if len(levels) != len(set(levels)):
        raise ValidationError(_("Tier levels must be unique"))

    previous = None
    for tier in ordered:
        if tier.max_threshold is not None and tier.max_threshold <= tier.min_threshold:
            raise ValidationError(
                _("Tier %(level)s: maximum must be greater than minimum")
                % {'level': tier.tier_level}
            )
        if previous is not None:
            if previous.max_threshold is None:
                raise ValidationError(
                    _("Only the highest tier may have no maximum threshold")
                )
            if tier.min_threshold < previous.max_threshold:
                raise ValidationError(
                    _("Tier %(level)s overlaps the tier below it")
                    % {'level': tier.tier_level}
                )
            if tier.min_threshold > previous.max_threshold:
                raise ValidationError(
                    _("Tier %(level)s must start where the tier below it ends")
                    % {'level': tier.tier_level}
                )
        previous = tier

    if complete and (not ordered or ordered[-1].max_threshold is not None):
        raise ValidationError(_("A tiered config needs a highest tier with no maximum threshold"))


class CommissionOverride(VenueBaseModel):
    """Per-staff exception within a config."""

    config = models.ForeignKey(
        CommissionConfig, on_delete=models.CASCADE, related_name='overrides',
        verbose_name=_("Config")
    )
    staff_id = models.UUIDField(_("Staff Member"), db_index=True)
    custom_rate = models.DecimalField(
        _("Custom Rate"), max_digits=12, decimal_places=4, null=True, blank=True,
        validators=[MinValueValidator(Decimal('0'))]
    )
    exclude_from_commissions = models.BooleanField(_("Exclude From Commissions"), default=False)
    effective_from = models.DateTimeField(_("Effective From"), null=True, blank=True)
    effective_to = models.DateTimeField(_("Effective To"), null=True, blank=True)
    notes = models.TextField(_("Notes"), blank=True)
    active = models.BooleanField(_("Active"), default=True)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_override'
        verbose_name = _("Commission Override")
        verbose_name_plural = _("Commission Overrides")
        ordering = ['config', 'staff_id', '-effective_from']

    def __str__(self):
        if self.exclude_from_commissions:
            return f"{self.config.name}: {self.staff_id} excluded"
        return f"{self.config.name}: {self.staff_id} @ {self.custom_rate}"

    def is_effective_at(self, at):
        return self.active and within_window(self.effective_from, self.effective_to, at)

    def clean(self):
        if (self.effective_from is not None and self.effective_to is not None
                and self.effective_from > self.effective_to):
            raise ValidationError({'effective_to': _("Effective end must be after the start")})
        if not self.active:
            return
        others = CommissionOverride.objects.filter(
            config_id=self.config_id, staff_id=self.staff_id, active=True,
        ).exclude(pk=self.pk)
        for other in others:
            if windows_overlap(self.effective_from, self.effective_to,
                               other.effective_from, other.effective_to):
                raise ValidationError(
                    _("This staff member already has an active override for this period")
                )


# =============================================================================
# Aggregates
# =============================================================================

class StaffSalesAggregate(VenueBaseModel):
    """Running sale totals of one staff member within one period bucket."""

    staff_id = models.UUIDField(_("Staff Member"))
    period = models.CharField(_("Period"), max_length=20, choices=TIER_PERIOD_CHOICES)
    bucket = models.CharField(_("Bucket"), max_length=20)
    total_amount = models.DecimalField(
        _("Total Amount"), max_digits=14, decimal_places=2, default=Decimal('0')
    )
    sale_count = models.PositiveIntegerField(_("Sale Count"), default=0)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_sales_aggregate'
        verbose_name = _("Staff Sales Aggregate")
        verbose_name_plural = _("Staff Sales Aggregates")
        constraints = [
            models.UniqueConstraint(
                fields=['venue_id', 'staff_id', 'period', 'bucket'],
                name='commissions_aggregate_unique_bucket',
            ),
        ]

    def __str__(self):
        return f"{self.staff_id} {self.period} {self.bucket}: {self.total_amount}"


class MilestoneAward(VenueBaseModel):
    """Marks a milestone as already paid to a staff member in a bucket."""

    config = models.ForeignKey(
        CommissionConfig, on_delete=models.CASCADE, related_name='milestone_awards'
    )
    staff_id = models.UUIDField(_("Staff Member"))
    tier_level = models.PositiveSmallIntegerField(_("Tier Level"))
    bucket = models.CharField(_("Bucket"), max_length=20)
    sale_id = models.CharField(_("Sale"), max_length=100)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_milestone_award'
        constraints = [
            models.UniqueConstraint(
                fields=['config', 'staff_id', 'tier_level', 'bucket'],
                name='commissions_milestone_unique_award',
            ),
        ]

    def __str__(self):
        return f"{self.config.name} L{self.tier_level} {self.staff_id} {self.bucket}"


# =============================================================================
# Calculations
# =============================================================================

class CommissionCalculation(VenueBaseModel):
    """Immutable record of the commission computed for one sale and staff."""

    CALCULATED = 'CALCULATED'
    NO_CONFIG = 'NO_CONFIG'
    EXCLUDED = 'EXCLUDED'
    TIER_GAP = 'TIER_GAP'
    MANUAL = 'MANUAL'
    MILESTONE_PENDING = 'MILESTONE_PENDING'
    OUTCOME_CHOICES = [
        (CALCULATED, _("Calculated")),
        (NO_CONFIG, _("No applicable config")),
        (EXCLUDED, _("Staff excluded")),
        (TIER_GAP, _("Below lowest tier")),
        (MANUAL, _("Manual adjustment pending")),
        (MILESTONE_PENDING, _("No milestone reached")),
    ]

    sale_id = models.CharField(_("Sale"), max_length=100)
    staff_id = models.UUIDField(_("Staff Member"))
    staff_role = models.CharField(_("Staff Role"), max_length=50, blank=True)

    config = models.ForeignKey(
        CommissionConfig, on_delete=models.PROTECT, null=True, blank=True,
        related_name='calculations', verbose_name=_("Config")
    )
    config_name = models.CharField(_("Config Name"), max_length=100, blank=True)
    tier_level = models.PositiveSmallIntegerField(_("Tier Level"), null=True, blank=True)
    override = models.ForeignKey(
        CommissionOverride, on_delete=models.PROTECT, null=True, blank=True,
        related_name='calculations', verbose_name=_("Override")
    )

    base_amount = models.DecimalField(_("Base Amount"), max_digits=12, decimal_places=2)
    rate_applied = models.DecimalField(
        _("Rate Applied"), max_digits=12, decimal_places=4, default=Decimal('0')
    )
    gross_commission = models.DecimalField(
        _("Gross Commission"), max_digits=12, decimal_places=2, default=Decimal('0')
    )
    final_commission = models.DecimalField(
        _("Final Commission"), max_digits=12, decimal_places=2, default=Decimal('0')
    )
    outcome = models.CharField(
        _("Outcome"), max_length=20, choices=OUTCOME_CHOICES, default=CALCULATED
    )
    sale_at = models.DateTimeField(_("Sale Time"))

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_calculation'
        verbose_name = _("Commission Calculation")
        verbose_name_plural = _("Commission Calculations")
        ordering = ['-sale_at', '-created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['venue_id', 'sale_id', 'staff_id'],
                name='commissions_calculation_unique_sale_staff',
            ),
        ]
        indexes = [
            models.Index(fields=['venue_id', 'staff_id', 'sale_at']),
        ]

    def __str__(self):
        return f"{self.sale_id} / {self.staff_id}: {self.final_commission}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ImmutableRecordError(f"Commission calculation {self.pk} cannot be modified")
        super().save(*args, **kwargs)


class DeferredCalculation(VenueBaseModel):
    """A sale whose config resolution was ambiguous, kept for a later retry."""

    sale_id = models.CharField(_("Sale"), max_length=100)
    staff_id = models.UUIDField(_("Staff Member"))
    payload = models.JSONField(_("Sale Payload"))
    error = models.TextField(_("Error"))
    resolved = models.BooleanField(_("Resolved"), default=False)
    resolved_at = models.DateTimeField(_("Resolved At"), null=True, blank=True)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_deferred_calculation'
        verbose_name = _("Deferred Calculation")
        verbose_name_plural = _("Deferred Calculations")
        ordering = ['created_at']
        constraints = [
            models.UniqueConstraint(
                fields=['venue_id', 'sale_id', 'staff_id'],
                name='commissions_deferred_unique_sale_staff',
            ),
        ]

    def __str__(self):
        return f"Deferred {self.sale_id} / {self.staff_id}"


# =============================================================================
# Payouts
# =============================================================================

class CommissionPayout(VenueBaseModel):
    """Commission payout batch for one staff member and period."""

    PENDING = 'PENDING'
    APPROVED = 'APPROVED'
    PROCESSING = 'PROCESSING'
    PAID = 'PAID'
    FAILED = 'FAILED'
    CANCELLED = 'CANCELLED'
    STATUS_CHOICES = [
        (PENDING, _("Pending Approval")),
        (APPROVED, _("Approved")),
        (PROCESSING, _("Processing")),
        (PAID, _("Paid")),
        (FAILED, _("Failed")),
        (CANCELLED, _("Cancelled")),
    ]

    TRANSITIONS = {
        PENDING: {APPROVED, CANCELLED},
        APPROVED: {PROCESSING, CANCELLED},
        PROCESSING: {PAID, FAILED},
        PAID: set(),
        FAILED: set(),
        CANCELLED: set(),
    }

    # Statuses whose calculations may not be claimed by another payout
    CLAIMING_STATUSES = (PENDING, APPROVED, PROCESSING, PAID)

    reference = models.CharField(_("Reference"), max_length=50, blank=True)
    staff_id = models.UUIDField(_("Staff Member"), db_index=True)

    period = models.CharField(
        _("Period"), max_length=20, choices=AGGREGATION_PERIOD_CHOICES, default=MONTHLY
    )
    period_start = models.DateField(_("Period Start"))
    period_end = models.DateField(_("Period End"))

    amount = models.DecimalField(
        _("Amount"), max_digits=12, decimal_places=2, default=Decimal('0.00')
    )
    calculation_count = models.PositiveIntegerField(_("Calculation Count"), default=0)
    calculations = models.ManyToManyField(
        CommissionCalculation, related_name='payouts', blank=True,
        verbose_name=_("Calculations")
    )

    status = models.CharField(
        _("Status"), max_length=20, choices=STATUS_CHOICES, default=PENDING
    )
    payment_method = models.CharField(
        _("Payment Method"), max_length=20,
        choices=CommissionsSettings.PAYMENT_METHOD_CHOICES, blank=True
    )
    payment_reference = models.CharField(
        _("Payment Reference"), max_length=100, blank=True,
        help_text=_("Check number, transfer ID, etc.")
    )

    approved_at = models.DateTimeField(_("Approved At"), null=True, blank=True)
    approved_by_id = models.UUIDField(_("Approved By"), null=True, blank=True)
    processed_at = models.DateTimeField(_("Processed At"), null=True, blank=True)
    paid_at = models.DateTimeField(_("Paid At"), null=True, blank=True)
    failure_reason = models.TextField(_("Failure Reason"), blank=True)
    notes = models.TextField(_("Notes"), blank=True)

    class Meta(VenueBaseModel.Meta):
        db_table = 'commissions_payout'
        verbose_name = _("Commission Payout")
        verbose_name_plural = _("Commission Payouts")
        ordering = ['-period_end', '-created_at']
        indexes = [
            models.Index(fields=['venue_id', 'staff_id', 'status']),
        ]

    def __str__(self):
        return f"{self.reference} - {self.staff_id}"

    def save(self, *args, **kwargs):
        if not self.reference:
            self.reference = self._generate_reference()
        super().save(*args, **kwargs)

    def _generate_reference(self):
        prefix = f"PAY-{date.today().strftime('%Y%m')}-"
        existing = CommissionPayout.all_objects.filter(
            venue_id=self.venue_id, reference__startswith=prefix
        ).count()
        return f"{prefix}{existing + 1:04d}"

    @property
    def can_be_modified(self):
        return self.status == self.PENDING

    @property
    def is_terminal(self):
        return not self.TRANSITIONS[self.status]

    def can_transition_to(self, target):
        return target in self.TRANSITIONS.get(self.status, set())

    def transition_to(self, target):
        if not self.can_transition_to(target):
            raise InvalidTransitionError(self.status, target)
        self.status = target

