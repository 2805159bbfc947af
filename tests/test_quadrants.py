import pytest

from diabetes_assistant.diabetes.utils.periods import Period, uniform_quarters, validate_periods
from diabetes_assistant.diabetes.utils.quadrants import (
    Quadrant,
    QuadrantCoefficients,
    quadrant_for_hour,
    rescale_periods,
)


@pytest.mark.parametrize(
    "hour, quadrant",
    [
        (6, Quadrant.MORNING),
        (11, Quadrant.MORNING),
        (12, Quadrant.AFTERNOON),
        (18, Quadrant.EVENING),
        (21, Quadrant.EVENING),
        (22, Quadrant.NIGHT),
        (0, Quadrant.NIGHT),
        (5, Quadrant.NIGHT),
    ],
)
def test_quadrant_for_hour(hour: int, quadrant: Quadrant) -> None:
    assert quadrant_for_hour(hour) is quadrant


def test_to_periods_is_valid_day() -> None:
    qc = QuadrantCoefficients(morning=1.2, afternoon=1.0, evening=0.9, night=0.8)
    periods = qc.to_periods()
    assert validate_periods(periods, strict=True).ok
    assert [(p.start_hour, p.duration_hours) for p in periods] == [
        (6, 6),
        (12, 6),
        (18, 4),
        (22, 8),
    ]


def test_aligned_periods_convert_exactly() -> None:
    qc = QuadrantCoefficients(morning=1.2, afternoon=1.0, evening=0.9, night=0.8)
    back, exact = QuadrantCoefficients.from_periods(qc.to_periods())
    assert exact
    assert back == qc


def test_straddling_periods_are_weighted() -> None:
    periods = uniform_quarters([1.0, 1.2, 1.0, 0.8])
    qc, exact = QuadrantCoefficients.from_periods(periods)
    assert not exact
    assert qc.morning == pytest.approx(1.2)
    assert qc.evening == pytest.approx(0.8)
    # 22-24 at 0.8 and 00-06 at 1.0
    assert qc.night == pytest.approx((2 * 0.8 + 6 * 1.0) / 8)


def test_uncovered_quadrant_defaults() -> None:
    qc, exact = QuadrantCoefficients.from_periods([Period(6, 6, 1.3)])
    assert not exact
    assert qc.morning == 1.3
    assert qc.night == 1.0


def test_rescale_keeps_user_boundaries() -> None:
    periods = uniform_quarters([1.0, 1.2, 1.0, 0.8])
    before, _ = QuadrantCoefficients.from_periods(periods)
    after = before.with_value(Quadrant.MORNING, before.morning * 0.8)
    rescaled, exact = rescale_periods(periods, before, after)
    assert exact
    assert [(p.start_hour, p.duration_hours) for p in rescaled] == [
        (p.start_hour, p.duration_hours) for p in periods
    ]
    assert rescaled[1].coefficient == pytest.approx(0.96)
    assert rescaled[0] == periods[0]
    assert rescaled[2] == periods[2]
    assert rescaled[3] == periods[3]


def test_rescale_reports_straddling_period() -> None:
    periods = [Period(0, 12, 1.0), Period(12, 12, 1.0)]
    before = QuadrantCoefficients()
    after = before.with_value(Quadrant.MORNING, 1.2)
    rescaled, exact = rescale_periods(periods, before, after)
    assert not exact
    # 6 of the 12 hours are morning
    assert rescaled[0].coefficient == pytest.approx((6 * 1.0 + 6 * 1.2) / 12)
    assert rescaled[1] == periods[1]
