#!/usr/bin/env python3
"""
Centrifuge (CFG): vesting status at the last finalized block.

Goal
----
Answer "how much vested CFG is sitting unclaimed, and how much is still
locked?" straight from chain state:

- Read the last finalized block number (the reference point).
- Page through every `Vesting.Vesting` storage entry at that block.
- Per account: released-so-far vs still-locked across all its schedules.
- Bucket accounts into "all schedules released" vs "at least one schedule
  still locked", plus population totals.

We talk to the node over plain HTTP JSON-RPC and decode the SCALE storage
values ourselves, so no Substrate SDK is needed.

Output
------
A console summary (or `--json`). Nothing is written to disk.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Iterator

from rpc_utils import (
    CENTRIFUGE_RPC_DEFAULT,
    VESTING_STORAGE_PREFIX,
    RpcError,
    blake2_128_concat,
    chain_get_finalized_head,
    chain_get_header_number,
    env,
    state_get_keys_paged,
    state_get_storage,
    state_query_storage_at,
    strip_0x,
)
from scale import ScaleDecodeError, decode_account_from_key, decode_vesting_schedules
from vesting import MalformedScheduleError, Report, VestingSchedule, aggregate, to_display_units


def fetch_reference_block(rpc_url: str) -> tuple[str, int]:
    block_hash = chain_get_finalized_head(rpc_url)
    return block_hash, chain_get_header_number(rpc_url, block_hash)


def iter_vesting_entries(
    rpc_url: str,
    at_hash: str,
    *,
    prefix: str = VESTING_STORAGE_PREFIX,
    page_size: int = 1000,
) -> Iterator[tuple[str, list[VestingSchedule] | None]]:
    start_key: str | None = None
    page_i = 0
    while True:
        keys = state_get_keys_paged(rpc_url, prefix, page_size, start_key, at_hash)
        if not keys:
            break
        page_i += 1
        values = state_query_storage_at(rpc_url, keys, at_hash)
        print(f"[{page_i}] {len(keys)} vesting keys", file=sys.stderr)

        for key in keys:
            account_id = decode_account_from_key(key, prefix)
            value = values.get(key)
            yield account_id, (decode_vesting_schedules(value) if value is not None else None)

        if len(keys) < page_size:
            break
        start_key = keys[-1]


def fetch_account_entry(
    rpc_url: str,
    at_hash: str,
    account_hex: str,
    *,
    prefix: str = VESTING_STORAGE_PREFIX,
) -> tuple[str, list[VestingSchedule] | None]:
    account = bytes.fromhex(strip_0x(account_hex))
    key = "0x" + strip_0x(prefix) + blake2_128_concat(account).hex()
    value = state_get_storage(rpc_url, key, at_hash)
    return "0x" + account.hex(), (decode_vesting_schedules(value) if value is not None else None)


def render_text(report: Report, *, symbol: str = "CFG") -> str:
    lines: list[str] = []
    lines.append("---------------------")
    lines.append(f"Users with ALL schedules expired: {len(report.fully_released_accounts)}")
    lines.append(f"Users with at least one active schedule: {len(report.partially_locked_accounts)}")

    if report.partially_locked_accounts:
        rows = [(str(i), account, f"{amount} {symbol}") for i, (account, amount) in enumerate(report.partially_locked_accounts)]
        widths = [max(len(r[c]) for r in rows + [("#", "account", "still locked")]) for c in range(3)]
        lines.append(f"{'#'.rjust(widths[0])}  {'account'.ljust(widths[1])}  {'still locked'.rjust(widths[2])}")
        for idx, account, amount in rows:
            lines.append(f"{idx.rjust(widths[0])}  {account.ljust(widths[1])}  {amount.rjust(widths[2])}")

    lines.append("")
    lines.append(f"Total fully vested (unclaimed) balance: {to_display_units(report.total_released)} {symbol}")
    lines.append(f"Total still vesting (active) balance:    {to_display_units(report.total_still_locked)} {symbol}")
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Report Centrifuge vesting status at the last finalized block.")
    parser.add_argument("--rpc-url", default=env("CENTRIFUGE_RPC_URL", CENTRIFUGE_RPC_DEFAULT))
    parser.add_argument("--page-size", type=int, default=1000, help="Storage keys per state_getKeysPaged call.")
    parser.add_argument("--storage-prefix", default=VESTING_STORAGE_PREFIX, help="Hex prefix of the Vesting.Vesting map.")
    parser.add_argument(
        "--account",
        action="append",
        default=[],
        help="Only report this account (hex public key). Repeatable.",
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON instead of a table.")
    args = parser.parse_args(argv)

    if args.page_size <= 0:
        parser.error("--page-size must be positive")
    for a in args.account:
        try:
            ok = len(bytes.fromhex(strip_0x(a))) == 32
        except ValueError:
            ok = False
        if not ok:
            parser.error(f"--account must be a 32-byte hex public key, got {a!r}")

    # Keep stdout pure JSON under --json.
    status_out = sys.stderr if args.json else sys.stdout

    try:
        at_hash, reference_block = fetch_reference_block(args.rpc_url)
        print(f"Current finalized block number: {reference_block}", file=status_out)

        if args.account:
            entries = [fetch_account_entry(args.rpc_url, at_hash, a, prefix=args.storage_prefix) for a in args.account]
            report = aggregate(entries, reference_block)
        else:
            report = aggregate(
                iter_vesting_entries(args.rpc_url, at_hash, prefix=args.storage_prefix, page_size=args.page_size),
                reference_block,
            )
    except (RpcError, ScaleDecodeError, MalformedScheduleError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(report.to_json(), indent=2, sort_keys=True))
    else:
        print(render_text(report))
    print("Done", file=status_out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
