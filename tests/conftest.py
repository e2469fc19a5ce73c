"""
Fixtures for commissions module tests.
"""
import itertools
import uuid
import pytest
from datetime import datetime, timezone as dt_timezone
from decimal import Decimal


SALE_TIME = datetime(2025, 3, 14, 12, 0, tzinfo=dt_timezone.utc)


@pytest.fixture
def venue_id():
    return uuid.uuid4()


@pytest.fixture
def staff_id():
    return uuid.uuid4()


@pytest.fixture
def other_staff_id():
    return uuid.uuid4()


@pytest.fixture
def sale_time():
    return SALE_TIME


@pytest.fixture
def make_sale(venue_id, staff_id):
    """Factory for completed sales with unique ids."""
    from commissions.services import Sale

    counter = itertools.count(1)

    def _make(**kwargs):
        data = {
            'sale_id': f"SALE-{next(counter):04d}",
            'venue_id': venue_id,
            'staff_id': staff_id,
            'base_amount': Decimal('1000.00'),
            'timestamp': SALE_TIME,
        }
        data.update(kwargs)
        return Sale(**data)

    return _make


@pytest.fixture
def percentage_config(db, venue_id):
    """3% on every sale, paid monthly."""
    from commissions.models import CommissionConfig

    return CommissionConfig.objects.create(
        venue_id=venue_id,
        name='Standard Commission',
        calc_type=CommissionConfig.PERCENTAGE,
        default_rate=Decimal('0.03'),
    )


@pytest.fixture
def tiered_config(db, venue_id):
    """Monthly volume ladder: 2% up to 10k, 3% up to 25k, 4% above."""
    from commissions.models import CommissionConfig, CommissionTier

    config = CommissionConfig.objects.create(
        venue_id=venue_id,
        name='Volume Ladder',
        calc_type=CommissionConfig.TIERED,
    )
    bands = [
        (1, Decimal('0'), Decimal('10000'), Decimal('0.02')),
        (2, Decimal('10000'), Decimal('25000'), Decimal('0.03')),
        (3, Decimal('25000'), None, Decimal('0.04')),
    ]
    for level, low, high, rate in bands:
        CommissionTier.objects.create(
            venue_id=venue_id,
            config=config,
            tier_level=level,
            tier_name=f"Tier {level}",
            min_threshold=low,
            max_threshold=high,
            rate=rate,
        )
    return config


@pytest.fixture
def milestone_config(db, venue_id):
    """1% of the month's sales once 1000 is crossed."""
    from commissions.models import CommissionConfig, CommissionTier

    config = CommissionConfig.objects.create(
        venue_id=venue_id,
        name='Monthly Milestone',
        calc_type=CommissionConfig.MILESTONE,
    )
    CommissionTier.objects.create(
        venue_id=venue_id,
        config=config,
        tier_level=1,
        tier_name='Bronze',
        min_threshold=Decimal('1000'),
        rate=Decimal('0.01'),
    )
    return config


@pytest.fixture
def exclusion_override(db, percentage_config, staff_id):
    from commissions.models import CommissionOverride

    return CommissionOverride.objects.create(
        venue_id=percentage_config.venue_id,
        config=percentage_config,
        staff_id=staff_id,
        exclude_from_commissions=True,
    )


@pytest.fixture
def client_with_session(client, db, venue_id):
    """Client with a venue selected in its session."""
    from django.contrib.sessions.backends.db import SessionStore
    session = SessionStore()
    session['venue_id'] = str(venue_id)
    session.create()
    client.cookies['sessionid'] = session.session_key
    return client


@pytest.fixture
def recording_dispatcher(settings):
    """Route payouts to the recording dispatcher; yields the dispatched payout ids."""
    from commissions.tests.stubs import RecordingDispatcher

    settings.COMMISSIONS_PAYMENT_DISPATCHER = 'commissions.tests.stubs.RecordingDispatcher'
    RecordingDispatcher.dispatched.clear()
    yield RecordingDispatcher.dispatched
    RecordingDispatcher.dispatched.clear()


@pytest.fixture
def staff_directory(settings):
    """Role lookup backed by a dict the test fills in."""
    from commissions.tests import stubs

    settings.COMMISSIONS_STAFF_DIRECTORY = 'commissions.tests.stubs.staff_role_lookup'
    stubs.STAFF_ROLES.clear()
    yield stubs.STAFF_ROLES
    stubs.STAFF_ROLES.clear()
