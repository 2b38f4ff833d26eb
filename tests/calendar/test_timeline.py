"""Tests for timeline composition.

Tests cover:
- Standard-only timelines (alignment, clipping, edge flags)
- Customizations replacing standard weeks
- Degraded inputs (inverted range, malformed config)
- Coverage and non-overlap across random cadences and customizations
"""

import random
from datetime import date

import pytest

from app.calendar.dates import add_days, js_weekday
from app.calendar.standard_week import cycle_length_days
from app.calendar.timeline import compose_timeline, relevant_customizations
from app.calendar.types import CalendarConfig, Week, WeekCustomization, WeekStatus

SUN_SAT = CalendarConfig(check_in_weekday=0, check_out_weekday=6)


def _customization(cid: str, start: date, end: date, status: WeekStatus = WeekStatus.VISIBLE, **kwargs):
    return WeekCustomization(id=cid, start_date=start, end_date=end, status=status, **kwargs)


def _key(week: Week) -> tuple[date, date, str]:
    return week.start_date, week.end_date, week.id


def _assert_gapless(weeks: list[Week], range_end: date) -> None:
    for previous, current in zip(weeks, weeks[1:]):
        assert current.start_date == add_days(previous.end_date, 1), (
            f"Gap or overlap between {previous.start_date}..{previous.end_date} "
            f"and {current.start_date}..{current.end_date}"
        )
    assert weeks[-1].end_date >= range_end


class TestStandardTimeline:
    """Test timelines without customizations."""

    def test_three_sunday_weeks_in_january(self):
        """2025-01-01..2025-01-21 with Sun-Sat cadence gives three weeks starting on Sundays."""
        weeks = compose_timeline(date(2025, 1, 1), date(2025, 1, 21), SUN_SAT, [])

        assert [(w.start_date, w.end_date) for w in weeks] == [
            (date(2025, 1, 5), date(2025, 1, 11)),
            (date(2025, 1, 12), date(2025, 1, 18)),
            (date(2025, 1, 19), date(2025, 1, 21)),
        ]
        assert all(js_weekday(w.start_date) == 0 for w in weeks)
        assert all(js_weekday(w.end_date) == 6 for w in weeks[:2])
        assert [w.is_partial_week for w in weeks] == [False, False, True]
        _assert_gapless(weeks, date(2025, 1, 21))

    def test_standard_weeks_have_default_status_and_derived_ids(self):
        weeks = compose_timeline(date(2025, 1, 5), date(2025, 1, 11), SUN_SAT, [])
        assert len(weeks) == 1
        assert weeks[0].status == WeekStatus.DEFAULT
        assert weeks[0].id == "week-20250105-20250111"
        assert not weeks[0].is_custom

    def test_edge_flags_on_first_and_last(self):
        weeks = compose_timeline(date(2025, 1, 5), date(2025, 2, 8), SUN_SAT, [])
        assert [w.is_edge_week for w in weeks] == [True, False, False, False, True]

    def test_single_week_is_both_edges(self):
        weeks = compose_timeline(date(2025, 1, 5), date(2025, 1, 7), SUN_SAT, [])
        assert len(weeks) == 1
        assert weeks[0].is_edge_week
        assert weeks[0].is_partial_week

    def test_string_bounds_are_normalized(self):
        weeks = compose_timeline("2025-01-01", "2025-01-21T10:00:00Z", SUN_SAT, [])
        assert len(weeks) == 3

    def test_read_is_idempotent(self):
        customizations = [_customization("c1", date(2025, 3, 8), date(2025, 3, 20))]
        first = compose_timeline(date(2025, 3, 1), date(2025, 4, 30), SUN_SAT, customizations)
        second = compose_timeline(date(2025, 3, 1), date(2025, 4, 30), SUN_SAT, customizations)
        assert first == second


class TestCycleAlignment:
    """Test standard weeks always open on the check-in weekday."""

    MON_FRI = CalendarConfig(check_in_weekday=1, check_out_weekday=5)
    SAT_SUN = CalendarConfig(check_in_weekday=6, check_out_weekday=0)

    def test_non_adjacent_check_out_runs_to_next_check_in(self):
        """Mon-Fri weeks keep the weekend so the next week still starts on Monday."""
        weeks = compose_timeline(date(2025, 1, 6), date(2025, 2, 2), self.MON_FRI, [])

        assert [(w.start_date, w.end_date) for w in weeks] == [
            (date(2025, 1, 6), date(2025, 1, 12)),
            (date(2025, 1, 13), date(2025, 1, 19)),
            (date(2025, 1, 20), date(2025, 1, 26)),
            (date(2025, 1, 27), date(2025, 2, 2)),
        ]
        assert not any(w.is_partial_week for w in weeks)

    def test_windows_agree_on_shared_weeks(self):
        full = compose_timeline(date(2025, 1, 6), date(2025, 2, 2), self.MON_FRI, [])
        later = compose_timeline(date(2025, 1, 13), date(2025, 2, 2), self.MON_FRI, [])
        assert [_key(w) for w in later] == [_key(w) for w in full[1:]]

    def test_two_week_cycle_phase_independent_of_window(self):
        """A Sat-Sun stay is longer than a week, so weeks repeat every 14 days from a fixed phase."""
        first = compose_timeline(date(2025, 1, 1), date(2025, 4, 30), self.SAT_SUN, [])
        shifted = compose_timeline(date(2025, 1, 8), date(2025, 4, 30), self.SAT_SUN, [])

        assert all(js_weekday(w.start_date) == 6 for w in first)
        assert all(w.length_days == 14 for w in first[:-1])
        assert {_key(w) for w in shifted[1:]} <= {_key(w) for w in first}
        assert {_key(w) for w in first[2:]} <= {_key(w) for w in shifted}

    def test_days_after_customization_fill_up_to_check_in(self):
        custom = _customization("c1", date(2025, 1, 8), date(2025, 1, 15))
        weeks = compose_timeline(date(2025, 1, 6), date(2025, 2, 2), self.MON_FRI, [custom])

        assert [(w.start_date, w.end_date, w.is_partial_week) for w in weeks] == [
            (date(2025, 1, 6), date(2025, 1, 7), True),
            (date(2025, 1, 8), date(2025, 1, 15), False),
            (date(2025, 1, 16), date(2025, 1, 19), True),
            (date(2025, 1, 20), date(2025, 1, 26), False),
            (date(2025, 1, 27), date(2025, 2, 2), False),
        ]

    def test_short_remainder_joins_following_week(self):
        custom = _customization("c1", date(2025, 1, 8), date(2025, 1, 17))
        weeks = compose_timeline(date(2025, 1, 6), date(2025, 2, 2), self.MON_FRI, [custom])

        assert (weeks[2].start_date, weeks[2].end_date) == (date(2025, 1, 18), date(2025, 1, 26))
        assert weeks[3].start_date == date(2025, 1, 27)


class TestDegradedInputs:
    """Test that bad input degrades instead of raising."""

    def test_inverted_range_returns_empty(self):
        assert compose_timeline(date(2025, 2, 1), date(2025, 1, 1), SUN_SAT, []) == []

    def test_unparseable_range_returns_empty(self):
        assert compose_timeline("soon", date(2025, 1, 1), SUN_SAT, []) == []

    def test_missing_config_uses_default_cadence(self):
        expected = compose_timeline(date(2025, 1, 1), date(2025, 1, 31), SUN_SAT, [])
        assert compose_timeline(date(2025, 1, 1), date(2025, 1, 31), None, []) == expected

    def test_malformed_config_uses_default_cadence(self):
        expected = compose_timeline(date(2025, 1, 1), date(2025, 1, 31), SUN_SAT, [])
        malformed = {"check_in_weekday": 9, "check_out_weekday": "friday"}
        assert compose_timeline(date(2025, 1, 1), date(2025, 1, 31), malformed, []) == expected

    def test_mapping_config_is_accepted(self):
        weeks = compose_timeline(
            date(2025, 1, 1),
            date(2025, 1, 31),
            {"check_in_weekday": 6, "check_out_weekday": 5},
            [],
        )
        assert weeks[0].start_date == date(2025, 1, 4)
        assert all(js_weekday(w.start_date) == 6 for w in weeks)


class TestCustomizations:
    """Test customizations replacing standard weeks."""

    def test_customization_replaces_span(self):
        custom = _customization("c1", date(2025, 3, 8), date(2025, 3, 20), name="Spring Gathering")
        weeks = compose_timeline(date(2025, 3, 1), date(2025, 3, 31), SUN_SAT, [custom])

        assert [(w.start_date, w.end_date, w.is_custom) for w in weeks] == [
            (date(2025, 3, 2), date(2025, 3, 7), False),
            (date(2025, 3, 8), date(2025, 3, 20), True),
            (date(2025, 3, 21), date(2025, 3, 29), False),
            (date(2025, 3, 30), date(2025, 3, 31), False),
        ]
        assert weeks[0].is_partial_week
        assert weeks[1].id == "c1"
        assert weeks[1].name == "Spring Gathering"
        assert weeks[1].display_name == "Spring Gathering"
        _assert_gapless(weeks, date(2025, 3, 31))

    def test_customization_starting_before_range(self):
        custom = _customization("c1", date(2025, 2, 25), date(2025, 3, 4))
        weeks = compose_timeline(date(2025, 3, 1), date(2025, 3, 15), SUN_SAT, [custom])

        assert weeks[0].id == "c1"
        assert weeks[1].start_date == date(2025, 3, 5)
        assert weeks[1].end_date == date(2025, 3, 8)
        _assert_gapless(weeks, date(2025, 3, 15))

    def test_customization_ending_after_range(self):
        custom = _customization("c1", date(2025, 3, 9), date(2025, 4, 12))
        weeks = compose_timeline(date(2025, 3, 2), date(2025, 3, 20), SUN_SAT, [custom])

        assert [w.id for w in weeks] == ["week-20250302-20250308", "c1"]
        assert weeks[-1].end_date == date(2025, 4, 12)

    def test_flexible_dates_and_link_carried(self):
        custom = _customization(
            "c1",
            date(2025, 3, 9),
            date(2025, 3, 15),
            link="https://example.org/retreat",
            flexible_checkin_dates=[date(2025, 3, 12), date(2025, 3, 10)],
        )
        week = next(w for w in compose_timeline(date(2025, 3, 2), date(2025, 3, 22), SUN_SAT, [custom]) if w.is_custom)
        assert week.link == "https://example.org/retreat"
        assert week.flexible_checkin_dates == [date(2025, 3, 10), date(2025, 3, 12)]

    def test_irrelevant_customizations_ignored(self):
        outside = _customization("far", date(2025, 8, 1), date(2025, 8, 10))
        with_outside = compose_timeline(date(2025, 3, 1), date(2025, 3, 31), SUN_SAT, [outside])
        assert with_outside == compose_timeline(date(2025, 3, 1), date(2025, 3, 31), SUN_SAT, [])

    def test_relevant_customizations_sorted(self):
        later = _customization("b", date(2025, 3, 20), date(2025, 3, 25))
        earlier = _customization("a", date(2025, 3, 5), date(2025, 3, 9))
        relevant = relevant_customizations([later, earlier], date(2025, 3, 1), date(2025, 3, 31))
        assert [c.id for c in relevant] == ["a", "b"]


class TestDeletedCustomizations:
    """Test withdrawn (status=deleted) customizations."""

    def test_deleted_hidden_from_end_users(self):
        withdrawn = _customization("gone", date(2025, 3, 9), date(2025, 3, 15), status=WeekStatus.DELETED)
        weeks = compose_timeline(date(2025, 3, 2), date(2025, 3, 22), SUN_SAT, [withdrawn])

        assert "gone" not in [w.id for w in weeks]
        assert not any(w.contains(date(2025, 3, 12)) for w in weeks)

    def test_deleted_visible_to_admins(self):
        withdrawn = _customization("gone", date(2025, 3, 9), date(2025, 3, 15), status=WeekStatus.DELETED)
        weeks = compose_timeline(date(2025, 3, 2), date(2025, 3, 22), SUN_SAT, [withdrawn], include_deleted=True)

        week = next(w for w in weeks if w.id == "gone")
        assert week.status == WeekStatus.DELETED
        _assert_gapless(weeks, date(2025, 3, 22))

    def test_hidden_customization_still_emitted(self):
        hidden = _customization("h", date(2025, 3, 9), date(2025, 3, 15), status=WeekStatus.HIDDEN)
        weeks = compose_timeline(date(2025, 3, 2), date(2025, 3, 22), SUN_SAT, [hidden])
        assert any(w.id == "h" and w.status == WeekStatus.HIDDEN for w in weeks)


class TestDuplicateStarts:
    """Test duplicate start days never hide an interval."""

    def test_duplicate_starts_get_unique_ids(self):
        first = _customization("dup", date(2025, 3, 9), date(2025, 3, 12))
        second = _customization("dup", date(2025, 3, 9), date(2025, 3, 15))
        weeks = compose_timeline(date(2025, 3, 2), date(2025, 3, 22), SUN_SAT, [first, second])

        starting = [w for w in weeks if w.start_date == date(2025, 3, 9)]
        assert len(starting) == 2
        assert len({w.id for w in weeks}) == len(weeks)
        assert {w.end_date for w in starting} == {date(2025, 3, 12), date(2025, 3, 15)}


class TestCoverageProperty:
    """Test coverage and non-overlap over random cadences and customizations."""

    @pytest.mark.parametrize("seed", range(25))
    def test_random_timelines_are_gapless(self, seed):
        rng = random.Random(seed)
        config = CalendarConfig(check_in_weekday=rng.randrange(7), check_out_weekday=rng.randrange(7))
        range_start = add_days(date(2025, 1, 1), rng.randrange(60))
        range_end = add_days(range_start, rng.randrange(30, 180))

        customizations = []
        cursor = add_days(range_start, -10)
        for index in range(rng.randrange(0, 6)):
            start = add_days(cursor, rng.randrange(0, 30))
            end = add_days(start, rng.randrange(0, 20))
            status = rng.choice([WeekStatus.VISIBLE, WeekStatus.HIDDEN, WeekStatus.DEFAULT])
            customizations.append(_customization(f"c{index}", start, end, status=status))
            cursor = add_days(end, 1)

        weeks = compose_timeline(range_start, range_end, config, customizations)

        assert weeks, "a range of at least 30 days always yields weeks"
        assert weeks == sorted(weeks, key=lambda w: w.start_date)
        assert all(w.start_date <= w.end_date for w in weeks)
        assert weeks[0].start_date <= add_days(range_start, cycle_length_days(config) - 1)
        _assert_gapless(weeks, range_end)
        for week in weeks:
            if not week.is_custom and not week.is_partial_week:
                assert week.length_days >= 3
        for previous, week in zip(weeks, weeks[1:]):
            if not week.is_custom and not previous.is_custom:
                assert js_weekday(week.start_date) == config.check_in_weekday, (
                    f"{week.start_date} does not start on check-in weekday {config.check_in_weekday}"
                )

        later_start = add_days(range_start, rng.randrange(1, 30))
        later = compose_timeline(later_start, range_end, config, customizations)
        # Past its first week a later window repeats the same weeks
        assert {_key(w) for w in later[1:]} <= {_key(w) for w in weeks}
