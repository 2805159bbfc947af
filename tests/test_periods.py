import pytest

from diabetes_assistant.diabetes.utils.periods import (
    Period,
    PeriodKind,
    PeriodSetError,
    add_period,
    edit_period,
    ensure_valid,
    format_start_time,
    parse_start_time,
    period_from_dict,
    period_to_dict,
    remove_period,
    uniform_quarters,
    validate_periods,
)


def _day(*spans: tuple[float, float, float]) -> list[Period]:
    return [Period(start, hours, coef) for start, hours, coef in spans]


def test_full_day_is_valid() -> None:
    periods = _day((0, 6, 1.0), (6, 6, 1.2), (12, 6, 1.0), (18, 6, 1.1))
    result = validate_periods(periods)
    assert result.ok
    assert result.total_hours == 24


def test_short_day_reports_total_and_gap() -> None:
    periods = _day((0, 6, 1.0), (6, 6, 1.2), (12, 8, 1.0))
    result = validate_periods(periods)
    assert not result.ok
    assert result.total_hours == 20
    assert "4 hours short of 24" in result.message


def test_long_day_reports_excess() -> None:
    periods = _day((0, 12, 1.0), (12, 14, 1.2))
    result = validate_periods(periods)
    assert not result.ok
    assert result.total_hours == 26
    assert "2 hours more than 24" in result.message


def test_empty_set_is_invalid() -> None:
    result = validate_periods([])
    assert not result.ok
    assert result.total_hours == 0
    assert "at least one period" in result.message


def test_accumulated_float_error_is_tolerated() -> None:
    periods = [Period(i * 0.1, 0.1, 1.0) for i in range(240)]
    assert validate_periods(periods).ok


@pytest.mark.parametrize("total", [23.5, 24.25, 48.0])
def test_reported_total_matches_sum(total: float) -> None:
    periods = [Period(0, total / 2, 1.0), Period(12, total / 2, 1.0)]
    result = validate_periods(periods)
    assert not result.ok
    assert result.total_hours == pytest.approx(total)


def test_strict_detects_gap_with_correct_total() -> None:
    periods = _day((0, 6, 1.0), (8, 6, 1.0), (12, 12, 1.0))
    assert validate_periods(periods).ok
    strict = validate_periods(periods, strict=True)
    assert not strict.ok
    assert "00:00 leaves a gap before the period starting 08:00" in strict.message


def test_strict_accepts_wrap_past_midnight() -> None:
    periods = _day((6, 16, 1.0), (22, 8, 0.9))
    assert validate_periods(periods, strict=True).ok


def test_ensure_valid_names_kind() -> None:
    with pytest.raises(PeriodSetError, match="sensitivity periods: periods cover 18 hours"):
        ensure_valid(_day((0, 18, 2.0)), PeriodKind.SENSITIVITY)


def test_period_rejects_bad_fields() -> None:
    with pytest.raises(PeriodSetError):
        Period(24, 1, 1.0)
    with pytest.raises(PeriodSetError):
        Period(0, 0, 1.0)
    with pytest.raises(ValueError):
        Period(0, 1, 0.0)


def test_contains_wraps_midnight() -> None:
    night = Period(22, 8, 0.9)
    assert night.contains(23)
    assert night.contains(0)
    assert night.contains(5)
    assert not night.contains(6)
    assert not night.contains(21)


def test_start_time_round_trip() -> None:
    assert parse_start_time("06:30") == 6.5
    assert format_start_time(6.5) == "06:30"
    with pytest.raises(PeriodSetError):
        parse_start_time("24:00")
    with pytest.raises(PeriodSetError):
        parse_start_time("6h")


def test_period_from_dict_accepts_both_shapes() -> None:
    a = period_from_dict({"startTime": "06:00", "hours": 6, "coefficient": 1.2}, PeriodKind.INSULIN)
    b = period_from_dict({"startHour": 6, "durationHours": 6, "coefficient": 1.2}, PeriodKind.INSULIN)
    assert a == b
    with pytest.raises(PeriodSetError, match="ratio"):
        period_from_dict({"startHour": 6, "hours": 6, "coefficient": 1.2}, PeriodKind.CARB_RATIO)


def test_period_to_dict_uses_kind_field() -> None:
    data = period_to_dict(Period(6, 6, 2.5, "Morning"), PeriodKind.SENSITIVITY)
    assert data == {
        "startTime": "06:00",
        "startHour": 6,
        "hours": 6,
        "sensitivity": 2.5,
        "label": "Morning",
    }


def test_edits_revalidate() -> None:
    base = uniform_quarters([1.0, 1.2, 1.0, 0.8])

    removed = remove_period(base, 3)
    assert not removed.validation.ok
    assert removed.validation.total_hours == 18

    added = add_period(removed.periods, Period(18, 6, 0.9))
    assert added.validation.ok
    assert [p.start_hour for p in added.periods] == [0, 6, 12, 18]

    edited = edit_period(base, 0, duration_hours=5)
    assert not edited.validation.ok
    assert "1 hours short" in edited.validation.message

    with pytest.raises(IndexError):
        remove_period(base, 4)
