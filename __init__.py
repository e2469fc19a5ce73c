"""Staff commission calculation and payouts for venues."""
