from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from placeclub_api.domain.periods import (
    Cadence,
    compute_period,
    daily_keys_within,
    parse_cadence,
)


ROME = ZoneInfo("Europe/Rome")


def test_daily_key_is_stable_within_a_day() -> None:
    morning = datetime(2026, 5, 12, 7, 0, tzinfo=ROME)
    evening = datetime(2026, 5, 12, 22, 30, tzinfo=ROME)

    assert compute_period(Cadence.DAILY, morning, ROME).key == "2026-05-12"
    assert compute_period(Cadence.DAILY, evening, ROME).key == "2026-05-12"


def test_local_midnight_splits_days_on_same_utc_date() -> None:
    # 23:50 and 00:10 Rome summer time are both 2026-05-12 in UTC
    before = datetime(2026, 5, 12, 21, 50, tzinfo=timezone.utc)
    after = datetime(2026, 5, 12, 22, 10, tzinfo=timezone.utc)

    first = compute_period("daily", before, "Europe/Rome")
    second = compute_period("daily", after, "Europe/Rome")

    assert first.key == "2026-05-12"
    assert second.key == "2026-05-13"
    assert first.reset_at == datetime(2026, 5, 13, 0, 0, tzinfo=ROME)


def test_daily_reset_on_spring_forward_day() -> None:
    now = datetime(2026, 3, 29, 1, 30, tzinfo=ROME)

    period = compute_period(Cadence.DAILY, now, ROME)

    assert period.key == "2026-03-29"
    assert period.reset_at == datetime(2026, 3, 30, 0, 0, tzinfo=ROME)
    # 23 hour day
    assert period.reset_at - now.astimezone(timezone.utc) == timedelta(hours=21, minutes=30)


def test_daily_reset_on_fall_back_day() -> None:
    now = datetime(2026, 10, 25, 0, 30, tzinfo=ROME)

    period = compute_period(Cadence.DAILY, now, ROME)

    assert period.key == "2026-10-25"
    assert period.reset_at.astimezone(timezone.utc) == datetime(2026, 10, 25, 23, 0, tzinfo=timezone.utc)


def test_weekly_key_uses_iso_year_across_new_year() -> None:
    # Friday 2027-01-01 belongs to ISO week 53 of 2026
    now = datetime(2027, 1, 1, 12, 0, tzinfo=ROME)

    period = compute_period(Cadence.WEEKLY, now, ROME)

    assert period.key == "2026-W53"
    assert period.starts_on == date(2026, 12, 28)
    assert period.reset_at == datetime(2027, 1, 4, 0, 0, tzinfo=ROME)


def test_weekly_key_zero_pads_week_number() -> None:
    now = datetime(2026, 1, 7, 9, 0, tzinfo=ROME)

    assert compute_period(Cadence.WEEKLY, now, ROME).key == "2026-W02"


def test_monthly_key_and_december_rollover() -> None:
    now = datetime(2026, 12, 31, 23, 59, tzinfo=ROME)

    period = compute_period(Cadence.MONTHLY, now, ROME)

    assert period.key == "2026-12"
    assert period.reset_at == datetime(2027, 1, 1, 0, 0, tzinfo=ROME)


@pytest.mark.parametrize("label", ["one_off", "special", "permanent", "one-off", "Una Tantum", "speciale"])
def test_one_off_aliases_never_reset(label: str) -> None:
    now = datetime(2026, 6, 1, tzinfo=timezone.utc)

    period = compute_period(label, now, ROME)

    assert period.cadence is Cadence.ONE_OFF
    assert period.key == "permanent"
    assert period.reset_at is None


def test_naive_instant_is_rejected() -> None:
    with pytest.raises(ValueError):
        compute_period(Cadence.DAILY, datetime(2026, 6, 1, 12, 0), ROME)


def test_unknown_cadence_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_cadence("hourly")


def test_daily_keys_within_week() -> None:
    period = compute_period(Cadence.WEEKLY, datetime(2026, 5, 14, tzinfo=ROME), ROME)

    keys = daily_keys_within(period)

    assert keys[0] == "2026-05-11"
    assert keys[-1] == "2026-05-17"
    assert len(keys) == 7


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("giornaliera", Cadence.DAILY),
        ("Giornaliero", Cadence.DAILY),
        ("settimanale", Cadence.WEEKLY),
        (" mensile ", Cadence.MONTHLY),
        ("una tantum", Cadence.ONE_OFF),
    ],
)
def test_legacy_catalog_labels_are_understood(label: str, expected: Cadence) -> None:
    assert parse_cadence(label) is expected


def test_legacy_weekly_label_uses_iso_week_key() -> None:
    now = datetime(2026, 5, 14, 9, 0, tzinfo=ROME)

    assert compute_period("settimanale", now, ROME).key == "2026-W20"
