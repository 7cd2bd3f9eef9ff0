import logging
import warnings

import numpy as np
import pytest
import torch

from timeavg.schedules import AveragedSpecifiedTimes, AveragedTimeInterval, TimeInterval
from timeavg.units import day
from timeavg.windowed_time_average import (
    DegenerateWindowWarning,
    PrematureReadWarning,
    WindowedTimeAverage,
    fetch_output,
    time_average_outputs,
)


def value(model):
    return model.value


def step_to(wta, model, t, value=None):
    """Advance the clock to `t`, set the operand value and advance the average."""
    model.clock.tick(t - model.clock.time)
    model.value = t if value is None else value
    wta.advance(model)


def riemann_average(times, values, window_start):
    dts = np.diff(np.concatenate(([window_start], times)))
    return np.sum(np.asarray(values) * dts) / (times[-1] - window_start)


def test_four_day_interval_with_two_day_window(model):
    schedule = AveragedTimeInterval(4 * day, window=2 * day)
    wta = WindowedTimeAverage(lambda m: m.clock.time / day, model, schedule=schedule)

    for _ in range(2):
        model.clock.tick(day)
        wta.advance(model)
        assert not wta.collecting
        # Nothing is accumulated before the window opens
        assert wta.result == 0.0

    model.clock.tick(day)
    wta.advance(model)
    assert wta.collecting
    assert wta.window_start_time == 2 * day
    assert wta.result == pytest.approx(3.0)

    model.clock.tick(day)
    wta.advance(model)
    assert not wta.collecting
    assert wta.schedule.actuations == 1
    assert wta.result == pytest.approx(3.5)

    # The average stays available until the next window opens
    for _ in range(2):
        model.clock.tick(day)
        wta.advance(model)
        assert wta.result == pytest.approx(3.5)


def test_new_window_starts_from_zero(model):
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(4, window=2))

    for t in range(1, 9):
        step_to(wta, model, float(t), value=100.0 if t <= 4 else 1.0)
        if t == 4:
            assert wta.result == pytest.approx(100.0)

    # The second window [6, 8] sees only ones
    assert wta.schedule.actuations == 2
    assert wta.result == pytest.approx(1.0)


@pytest.mark.parametrize("n", [3, 10])
def test_average_is_riemann_sum_over_nonuniform_samples(model, n):
    rng = np.random.default_rng(n)
    times = np.sort(rng.uniform(0.0, 10.0, size=n - 1))
    times = np.append(times, 10.0)
    values = rng.normal(size=n)

    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(10))
    for t, v in zip(times, values):
        step_to(wta, model, t, value=v)

    assert wta.schedule.actuations == 1
    assert wta.result == pytest.approx(riemann_average(times, values, 0.0))


def test_three_samples_against_closed_form(model):
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(10))

    step_to(wta, model, 2.5, value=4.0)
    step_to(wta, model, 6.0, value=-2.0)
    step_to(wta, model, 10.0, value=1.0)

    assert wta.result == pytest.approx((4.0 * 2.5 - 2.0 * 3.5 + 1.0 * 4.0) / 10)


def test_off_stride_ticks_leave_result_untouched(model):
    with pytest.warns(DegenerateWindowWarning):
        wta = WindowedTimeAverage(
            lambda m: np.full(4, m.value),
            model,
            schedule=AveragedTimeInterval(10, stride=3),
        )

    values = {}
    for t in range(1, 11):
        before = wta.result.copy()
        step_to(wta, model, float(t), value=float(t) ** 2)
        values[t] = float(t) ** 2

        if t == 1:
            # Opening the window zeroes the result without taking a sample
            np.testing.assert_array_equal(wta.result, np.zeros(4))
        elif t % 3 == 0 or t == 10:
            assert not np.array_equal(wta.result, before)
        else:
            np.testing.assert_array_equal(wta.result, before)

    times = np.array([3.0, 6.0, 9.0, 10.0])
    expected = riemann_average(times, [values[int(t)] for t in times], 0.0)
    np.testing.assert_allclose(wta.result, np.full(4, expected))


def test_operand_is_only_fetched_for_samples(model):
    calls = []

    def operand(m):
        calls.append(m.clock.iteration)
        return m.value

    with pytest.warns(DegenerateWindowWarning):
        wta = WindowedTimeAverage(
            operand, model, schedule=AveragedTimeInterval(4, window=2, stride=2)
        )
    calls.clear()

    for t in range(1, 9):
        step_to(wta, model, float(t))

    # Windows open at iterations 3 and 7, so strides land on 4 and 8 which also end
    # the windows
    assert calls == [4, 8]


def test_window_containment_with_variable_time_steps(model):
    rng = np.random.default_rng(0)
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(4, window=3))

    actuations = 0
    while model.clock.time < 40:
        dt = min(rng.uniform(0.05, 0.5), 40 - model.clock.time)
        step_to(wta, model, model.clock.time + dt, value=rng.normal())

        if wta.collecting:
            assert (
                wta.window_start_time
                <= wta.previous_collection_time
                <= model.clock.time
            )

        # At most one window closes per step
        assert wta.schedule.actuations - actuations in (0, 1)
        actuations = wta.schedule.actuations

    assert wta.schedule.actuations == 10


def test_constant_operand_averages_to_itself_with_variable_steps(model):
    rng = np.random.default_rng(1)
    wta = WindowedTimeAverage(
        lambda m: np.full((2, 3), 7.0), model, schedule=AveragedTimeInterval(4, window=3)
    )

    while model.clock.time < 8:
        step_to(wta, model, min(model.clock.time + rng.uniform(0.1, 0.7), 8.0))

    np.testing.assert_allclose(wta.result, np.full((2, 3), 7.0))


def test_specified_times_sample_at_window_start_has_no_weight(model):
    schedule = AveragedSpecifiedTimes([5, 10], window=2)
    wta = WindowedTimeAverage(value, model, schedule=schedule)

    step_to(wta, model, 1.0)
    step_to(wta, model, 2.0)
    assert not wta.collecting

    step_to(wta, model, 3.0)
    assert wta.collecting
    assert wta.window_start_time == 3.0
    assert wta.result == 0.0
    assert not np.isnan(wta.result)

    step_to(wta, model, 4.0)
    step_to(wta, model, 5.0)
    assert not wta.collecting
    assert wta.schedule.next_index == 1
    assert wta.result == pytest.approx(4.5)


def test_specified_times_exhaustion(model):
    schedule = AveragedSpecifiedTimes([5, 10], window=2)
    wta = WindowedTimeAverage(value, model, schedule=schedule)

    for t in range(1, 11):
        step_to(wta, model, float(t))

    assert wta.schedule.exhausted
    assert wta.result == pytest.approx(9.5)

    final = wta.result.copy()
    for t in (15.0, 20.0, 100.0):
        step_to(wta, model, t)
        assert not wta.collecting
        assert not wta.schedule.should_actuate(model.clock)
        np.testing.assert_array_equal(wta.result, final)
    assert wta.schedule.next_index == 2


def test_nothing_happens_at_iteration_zero(model):
    model.value = 3.0
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(4, window=4))

    wta.advance(model)

    assert not wta.collecting
    assert wta.result == 3.0


def test_initial_result_is_snapshot_of_operand(model):
    field = np.arange(6).reshape(2, 3)
    wta = WindowedTimeAverage(lambda m: field, model, schedule=AveragedTimeInterval(1))

    np.testing.assert_array_equal(wta.result, field)
    assert wta.result is not field
    assert np.issubdtype(wta.result.dtype, np.floating)


def test_accumulator_owns_a_copy_of_the_schedule(model):
    template = AveragedTimeInterval(2, window=1)
    a = WindowedTimeAverage(value, model, schedule=template)
    b = WindowedTimeAverage(value, model, schedule=template)

    for t in (1.0, 1.5, 2.0):
        model.clock.tick(t - model.clock.time)
        a.advance(model)

    assert a.schedule.actuations == 1
    assert b.schedule.actuations == 0
    assert template.actuations == 0
    assert not template.collecting


def test_fixed_operand_is_read_without_model(model):
    field = np.zeros(3)
    wta = WindowedTimeAverage(
        field, schedule=AveragedTimeInterval(2), fetch_operand=False
    )

    for t in (1.0, 2.0):
        field[:] = t
        model.clock.tick(1.0)
        wta.advance(model)

    np.testing.assert_allclose(wta.result, np.full(3, 1.5))


def test_torch_operand(model):
    wta = WindowedTimeAverage(
        lambda m: torch.full((2, 2), m.clock.time),
        model,
        schedule=AveragedTimeInterval(2),
    )
    assert torch.is_tensor(wta.result)

    for t in (0.5, 1.0, 2.0):
        model.clock.tick(t - model.clock.time)
        wta.advance(model)

    expected = (0.5 * 0.5 + 1.0 * 0.5 + 2.0 * 1.0) / 2
    torch.testing.assert_close(wta.result, torch.full((2, 2), expected))


def test_list_operand(model):
    wta = WindowedTimeAverage(
        lambda m: [m.clock.time, 1.0], model, schedule=AveragedTimeInterval(2)
    )

    for t in (1.0, 2.0):
        step_to(wta, model, t)

    assert isinstance(wta.result, np.ndarray)
    np.testing.assert_allclose(wta.result, [1.5, 1.0])


def test_window_opening_and_closing_is_logged(model, caplog):
    caplog.set_level(logging.DEBUG, logger="timeavg")
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(2, window=1))

    for t in (1.0, 1.5, 2.0):
        step_to(wta, model, t)

    records = [r for r in caplog.records if r.name == "timeavg.windowed_time_average"]
    messages = [r.getMessage() for r in records]
    assert any(m.startswith("Opening averaging window") for m in messages)
    assert any(m.startswith("Closed averaging window") for m in messages)
    assert all(r.levelno == logging.DEBUG for r in records)


def test_fetch_reports_completeness(model):
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(2))

    with warnings.catch_warnings():
        warnings.simplefilter("error")
        result = wta.fetch(model)
    assert not result.complete

    step_to(wta, model, 1.0)
    with pytest.warns(PrematureReadWarning):
        result = wta(model)
    assert not result.complete
    assert result.value is wta.result

    step_to(wta, model, 2.0)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        result = wta(model)
    assert result.complete
    assert result.value == pytest.approx(1.5)


def test_fetch_with_stride_warns(model):
    with pytest.warns(DegenerateWindowWarning):
        schedule = AveragedTimeInterval(2, stride=2)
        wta = WindowedTimeAverage(value, model, schedule=schedule)

    with pytest.warns(DegenerateWindowWarning):
        wta.fetch(model)


def test_only_averaging_schedules_are_accepted(model):
    with pytest.raises(TypeError):
        WindowedTimeAverage(value, model, schedule=TimeInterval(1))


def test_fetch_output_unwraps_time_averages(model):
    model.value = 2.0
    wta = WindowedTimeAverage(value, model, schedule=AveragedTimeInterval(1))

    assert fetch_output(wta, model) is wta.result
    assert fetch_output(value, model) == 2.0
    assert fetch_output(5.0, model) == 5.0


def test_time_average_outputs_wraps_each_output(model):
    template = AveragedTimeInterval(4, window=2)
    outputs = {"a": value, "b": lambda m: np.zeros(3)}

    schedule, averaged = time_average_outputs(template, outputs, model)

    assert schedule == TimeInterval(4)
    assert set(averaged) == {"a", "b"}
    assert all(isinstance(output, WindowedTimeAverage) for output in averaged.values())
    assert averaged["a"].schedule is not averaged["b"].schedule
    assert averaged["a"].schedule is not template


def test_time_average_outputs_passes_through_other_schedules(model):
    outputs = {"a": value}
    schedule = TimeInterval(1)

    assert time_average_outputs(schedule, outputs, model) == (schedule, outputs)
