from __future__ import annotations

from rpc_utils import blake2_128, strip_0x
from vesting import VestingSchedule


# VestingInfo<Balance = u128, BlockNumber = u32>
LOCKED_BYTES = 16
PER_BLOCK_BYTES = 16
STARTING_BLOCK_BYTES = 4

ACCOUNT_ID_BYTES = 32
BLAKE2_128_BYTES = 16


class ScaleDecodeError(ValueError):
    pass


class ScaleReader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def read_bytes(self, n: int) -> bytes:
        if n > self.remaining():
            raise ScaleDecodeError(f"truncated input: wanted {n} bytes at offset {self.offset}, have {self.remaining()}")
        out = self.data[self.offset : self.offset + n]
        self.offset += n
        return out

    def read_uint(self, n: int) -> int:
        return int.from_bytes(self.read_bytes(n), "little")

    def read_compact(self) -> int:
        b0 = self.read_uint(1)
        mode = b0 & 0b11
        if mode == 0:
            return b0 >> 2
        if mode == 1:
            return (b0 | (self.read_uint(1) << 8)) >> 2
        if mode == 2:
            return (b0 | (self.read_uint(3) << 8)) >> 2
        # Big-integer mode: upper six bits hold (byte length - 4).
        return self.read_uint((b0 >> 2) + 4)


def _hex_to_bytes(value_hex: str) -> bytes:
    try:
        return bytes.fromhex(strip_0x(value_hex))
    except ValueError as e:
        raise ScaleDecodeError(f"not a hex string: {value_hex[:80]!r}") from e


def decode_vesting_schedules(value_hex: str) -> list[VestingSchedule]:
    r = ScaleReader(_hex_to_bytes(value_hex))
    count = r.read_compact()
    schedules: list[VestingSchedule] = []
    for _ in range(count):
        schedules.append(
            VestingSchedule(
                locked=r.read_uint(LOCKED_BYTES),
                per_block=r.read_uint(PER_BLOCK_BYTES),
                starting_block=r.read_uint(STARTING_BLOCK_BYTES),
            )
        )
    if r.remaining():
        raise ScaleDecodeError(f"{r.remaining()} trailing bytes after {count} vesting schedules")
    return schedules


def decode_account_from_key(storage_key_hex: str, prefix_hex: str) -> str:
    key = _hex_to_bytes(storage_key_hex)
    prefix = _hex_to_bytes(prefix_hex)
    if not key.startswith(prefix):
        raise ScaleDecodeError(f"storage key {storage_key_hex} does not start with prefix {prefix_hex}")

    r = ScaleReader(key[len(prefix) :])
    key_hash = r.read_bytes(BLAKE2_128_BYTES)
    account = r.read_bytes(ACCOUNT_ID_BYTES)
    if r.remaining():
        raise ScaleDecodeError(f"storage key {storage_key_hex} has {r.remaining()} unexpected trailing bytes")
    if blake2_128(account) != key_hash:
        raise ScaleDecodeError(f"storage key {storage_key_hex} fails the blake2_128_concat check")
    return "0x" + account.hex()
