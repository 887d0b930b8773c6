import pytest

from vesting import (
    AccountOutcome,
    MalformedScheduleError,
    ScheduleOutcome,
    VestingSchedule,
    aggregate,
    compute_account,
    compute_schedule,
    to_display_units,
)


SCHEDULE = VestingSchedule(locked=1000, per_block=10, starting_block=100)


def test_schedule_partially_released():
    assert compute_schedule(SCHEDULE, 150) == ScheduleOutcome(released=500, still_locked=500)


def test_schedule_clamped_to_locked():
    assert compute_schedule(SCHEDULE, 300) == ScheduleOutcome(released=1000, still_locked=0)


def test_schedule_before_start_releases_nothing():
    assert compute_schedule(SCHEDULE, 50) == ScheduleOutcome(released=0, still_locked=1000)
    assert compute_schedule(SCHEDULE, 100) == ScheduleOutcome(released=0, still_locked=1000)


def test_schedule_exactly_at_cap():
    assert compute_schedule(SCHEDULE, 200) == ScheduleOutcome(released=1000, still_locked=0)
    assert compute_schedule(SCHEDULE, 199) == ScheduleOutcome(released=990, still_locked=10)


def test_zero_locked_is_released():
    out = compute_schedule(VestingSchedule(locked=0, per_block=5, starting_block=10), 0)
    assert out == ScheduleOutcome(released=0, still_locked=0)


def test_conservation_and_monotonicity():
    schedules = [
        SCHEDULE,
        VestingSchedule(locked=7, per_block=3, starting_block=0),
        VestingSchedule(locked=10**30, per_block=10**21, starting_block=1_000),
        VestingSchedule(locked=5, per_block=0, starting_block=0),
    ]
    for s in schedules:
        prev = None
        for block in (0, 1, 2, 99, 100, 101, 150, 1_000, 5_000, 10**9, 10**12):
            out = compute_schedule(s, block)
            assert out.released + out.still_locked == s.locked
            assert 0 <= out.released <= s.locked
            if prev is not None:
                assert out.released >= prev.released
                assert out.still_locked <= prev.still_locked
            prev = out


def test_values_beyond_64_bits():
    locked = 2**127 + 12345
    s = VestingSchedule(locked=locked, per_block=2**100, starting_block=2**40)
    out = compute_schedule(s, 2**40 + 2**26)
    assert out.released == 2**126
    assert out.still_locked == locked - 2**126


@pytest.mark.parametrize(
    "schedule",
    [
        VestingSchedule(locked=-1, per_block=1, starting_block=0),
        VestingSchedule(locked=1, per_block=-1, starting_block=0),
        VestingSchedule(locked=1, per_block=1, starting_block=-5),
        VestingSchedule(locked="100", per_block=1, starting_block=0),
        VestingSchedule(locked=1.5, per_block=1, starting_block=0),
        VestingSchedule(locked=True, per_block=1, starting_block=0),
    ],
)
def test_malformed_schedule_rejected(schedule):
    with pytest.raises(MalformedScheduleError):
        compute_schedule(schedule, 10)


def test_negative_reference_block_rejected():
    with pytest.raises(MalformedScheduleError):
        compute_schedule(SCHEDULE, -1)


def test_account_mixed_schedules_is_locked():
    released_one = VestingSchedule(locked=100, per_block=100, starting_block=0)
    out = compute_account([released_one, SCHEDULE], 150)
    assert out == AccountOutcome(released=600, still_locked=500, fully_released=False)


def test_account_all_schedules_released():
    out = compute_account([SCHEDULE, VestingSchedule(locked=1, per_block=1, starting_block=0)], 300)
    assert out == AccountOutcome(released=1001, still_locked=0, fully_released=True)


def test_account_without_schedules_is_vacuously_released():
    assert compute_account([], 10) == AccountOutcome(released=0, still_locked=0, fully_released=True)


@pytest.mark.parametrize(
    "amount,expected",
    [
        (0, "0"),
        (10**18, "1"),
        (15 * 10**17, "1.5"),
        (1, "0.000000000000000001"),
        (123456789 * 10**18 + 120, "123456789.00000000000000012"),
        (10**40 + 1, "10000000000000000000000.000000000000000001"),
    ],
)
def test_to_display_units_is_exact(amount, expected):
    assert to_display_units(amount) == expected


def test_to_display_units_rejects_negative():
    with pytest.raises(MalformedScheduleError):
        to_display_units(-1)


def _entries():
    return [
        ("alice", [SCHEDULE]),
        ("bob", [VestingSchedule(locked=50, per_block=1, starting_block=0)]),
        ("carol", None),
        ("dave", [VestingSchedule(locked=100, per_block=100, starting_block=0), SCHEDULE]),
        ("erin", [VestingSchedule(locked=3 * 10**18, per_block=10**18, starting_block=148)]),
    ]


def test_aggregate_buckets_and_totals():
    report = aggregate(_entries(), 150)

    assert report.reference_block == 150
    assert report.fully_released_accounts == ("bob",)
    assert report.partially_locked_accounts == (
        ("alice", "0.0000000000000005"),
        ("dave", "0.0000000000000005"),
        ("erin", "1"),
    )
    assert report.total_released == 500 + 50 + 600 + 2 * 10**18
    assert report.total_still_locked == 500 + 500 + 10**18


def test_aggregate_totals_cover_all_locked():
    entries = _entries()
    report = aggregate(entries, 150)
    locked = sum(s.locked for _, schedules in entries if schedules for s in schedules)
    assert report.total_locked == locked


def test_aggregate_keeps_input_order():
    entries = list(reversed(_entries()))
    report = aggregate(entries, 150)
    assert [a for a, _ in report.partially_locked_accounts] == ["erin", "dave", "alice"]


def test_aggregate_is_deterministic():
    assert aggregate(_entries(), 150) == aggregate(_entries(), 150)
    assert aggregate(_entries(), 150).to_json() == aggregate(_entries(), 150).to_json()


def test_aggregate_skips_absent_entries():
    report = aggregate([("carol", None)], 150)
    assert report.fully_released_accounts == ()
    assert report.partially_locked_accounts == ()
    assert report.total_locked == 0


def test_aggregate_rejects_empty_schedule_list():
    with pytest.raises(MalformedScheduleError) as exc:
        aggregate([("zed", [])], 150)
    assert exc.value.account == "zed"


def test_aggregate_aborts_on_malformed_schedule():
    entries = [("alice", [SCHEDULE]), ("mallory", [VestingSchedule(locked=-1, per_block=1, starting_block=0)])]
    with pytest.raises(MalformedScheduleError) as exc:
        aggregate(entries, 150)
    assert exc.value.account == "mallory"
    assert "mallory" in str(exc.value)


def test_report_json_shape():
    data = aggregate(_entries(), 150).to_json()
    assert data["totals"]["fully_released_count"] == 1
    assert data["totals"]["partially_locked_count"] == 3
    assert data["totals"]["still_locked_raw"] == str(10**18 + 1000)
    assert data["partially_locked_accounts"][2] == {"account": "erin", "still_locked_cfg": "1"}
