"""
Vesting status arithmetic.

A vesting schedule releases `per_block` units every block from `starting_block`
on, capped at `locked`. Given the last finalized block we work out, per
schedule, how much has been released and how much is still locked, then fold
accounts into two buckets (fully released / still locked) plus population
totals.

All amounts are raw on-chain integers (CFG has 18 decimals). Python ints are
arbitrary precision, so u128 balances multiplied by block counts never wrap.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Sequence


CFG_DECIMALS = 18
CFG_SCALE = 10**CFG_DECIMALS


class MalformedScheduleError(ValueError):
    def __init__(self, message: str, *, account: str | None = None) -> None:
        super().__init__(message)
        self.account = account


def _check_uint(name: str, value: Any) -> int:
    # bool is an int subclass; a True/False balance is a decoding bug, not a 1/0.
    if isinstance(value, bool) or not isinstance(value, int):
        raise MalformedScheduleError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise MalformedScheduleError(f"{name} must be non-negative, got {value}")
    return value


@dataclass(frozen=True)
class VestingSchedule:
    locked: int
    per_block: int
    starting_block: int


@dataclass(frozen=True)
class ScheduleOutcome:
    released: int
    still_locked: int


@dataclass(frozen=True)
class AccountOutcome:
    released: int
    still_locked: int
    fully_released: bool


def compute_schedule(schedule: VestingSchedule, reference_block: int) -> ScheduleOutcome:
    locked = _check_uint("locked", schedule.locked)
    per_block = _check_uint("per_block", schedule.per_block)
    starting_block = _check_uint("starting_block", schedule.starting_block)
    reference_block = _check_uint("reference_block", reference_block)

    elapsed = max(0, reference_block - starting_block)
    released = min(locked, per_block * elapsed)
    return ScheduleOutcome(released=released, still_locked=locked - released)


def compute_account(schedules: Iterable[VestingSchedule], reference_block: int) -> AccountOutcome:
    released = 0
    still_locked = 0
    fully_released = True
    for schedule in schedules:
        outcome = compute_schedule(schedule, reference_block)
        released += outcome.released
        still_locked += outcome.still_locked
        if outcome.still_locked > 0:
            fully_released = False
    return AccountOutcome(released=released, still_locked=still_locked, fully_released=fully_released)


def to_display_units(amount: int, *, decimals: int = CFG_DECIMALS) -> str:
    """Render a raw amount in whole units, exactly (decimal point inserted, no float)."""
    amount = _check_uint("amount", amount)
    whole, frac = divmod(amount, 10**decimals)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).rjust(decimals, '0').rstrip('0')}"


@dataclass(frozen=True)
class Report:
    reference_block: int
    fully_released_accounts: tuple[str, ...]
    partially_locked_accounts: tuple[tuple[str, str], ...]
    total_released: int
    total_still_locked: int

    @property
    def total_locked(self) -> int:
        return self.total_released + self.total_still_locked

    def to_json(self) -> dict[str, Any]:
        return {
            "reference_block": self.reference_block,
            "fully_released_accounts": list(self.fully_released_accounts),
            "partially_locked_accounts": [
                {"account": account, "still_locked_cfg": amount} for account, amount in self.partially_locked_accounts
            ],
            "totals": {
                "fully_released_count": len(self.fully_released_accounts),
                "partially_locked_count": len(self.partially_locked_accounts),
                "released_raw": str(self.total_released),
                "still_locked_raw": str(self.total_still_locked),
                "released_cfg": to_display_units(self.total_released),
                "still_locked_cfg": to_display_units(self.total_still_locked),
            },
        }


def aggregate(
    entries: Iterable[tuple[str, Sequence[VestingSchedule] | None]],
    reference_block: int,
) -> Report:
    """
    Fold per-account outcomes into a Report.

    `None` schedules mean the storage entry is absent and the account is
    skipped. A malformed schedule aborts the whole aggregation.
    """
    reference_block = _check_uint("reference_block", reference_block)

    fully_released: list[str] = []
    partially_locked: list[tuple[str, str]] = []
    total_released = 0
    total_still_locked = 0

    for account_id, schedules in entries:
        if schedules is None:
            continue
        if len(schedules) == 0:
            # Empty vectors are pruned on-chain; seeing one means the feed is broken.
            raise MalformedScheduleError(f"{account_id}: empty vesting schedule list", account=account_id)
        try:
            outcome = compute_account(schedules, reference_block)
        except MalformedScheduleError as e:
            raise MalformedScheduleError(f"{account_id}: {e}", account=account_id) from e

        total_released += outcome.released
        total_still_locked += outcome.still_locked

        if outcome.fully_released:
            fully_released.append(account_id)
        else:
            partially_locked.append((account_id, to_display_units(outcome.still_locked)))

    return Report(
        reference_block=reference_block,
        fully_released_accounts=tuple(fully_released),
        partially_locked_accounts=tuple(partially_locked),
        total_released=total_released,
        total_still_locked=total_still_locked,
    )
