from __future__ import annotations

import os
import random
import time
from typing import Any

import requests
from Crypto.Hash import BLAKE2b


USER_AGENT = "centrifuge-vesting-status/1.0"

CENTRIFUGE_RPC_DEFAULT = "https://fullnode.centrifuge.io"

# twox128("Vesting") ++ twox128("Vesting"): pallet prefix + storage item prefix of Vesting.Vesting.
VESTING_STORAGE_PREFIX = "0x5f27b51b5ec208ee9cb25b55d87282435f27b51b5ec208ee9cb25b55d8728243"


def env(name: str, default: str) -> str:
    val = os.getenv(name)
    return val if val else default


def blake2_128(data: bytes) -> bytes:
    h = BLAKE2b.new(digest_bits=128)
    h.update(data)
    return h.digest()


def blake2_128_concat(data: bytes) -> bytes:
    return blake2_128(data) + data


def strip_0x(hex_str: str) -> str:
    return hex_str[2:] if hex_str.startswith(("0x", "0X")) else hex_str


class RpcError(RuntimeError):
    pass


class TransientRpcError(RpcError):
    pass


def _should_retry_rpc_error(err: Any) -> bool:
    # Retry rate-limits / transient node errors, fail fast on malformed calls.
    if not isinstance(err, dict):
        return True
    code = err.get("code")
    msg = str(err.get("message", "")).lower()

    if "unknown block" in msg or "state already discarded" in msg:
        return False

    # JSON-RPC "hard" errors.
    if code in {-32601, -32602, -32603}:
        return False

    # Substrate server errors (-32000..-32099) are mostly pool/backpressure; retry those and anything unknown.
    return True


def rpc_call(rpc_url: str, method: str, params: list[Any]) -> Any:
    payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
    headers = {"User-Agent": USER_AGENT}

    max_attempts = 6
    backoff_base_s = 0.5

    for attempt in range(1, max_attempts + 1):
        try:
            resp = requests.post(rpc_url, json=payload, timeout=60, headers=headers)
            if resp.status_code in {429, 500, 502, 503, 504}:
                raise requests.HTTPError(f"RPC HTTP {resp.status_code}", response=resp)
            resp.raise_for_status()

            data = resp.json()
            if "error" in data:
                err = data["error"]
                if _should_retry_rpc_error(err) and attempt < max_attempts:
                    raise TransientRpcError(f"{method}: {err}")
                raise RpcError(f"{method}: {err}")
            return data["result"]
        except (requests.RequestException, ValueError, TransientRpcError) as e:
            if isinstance(e, requests.HTTPError) and getattr(e, "response", None) is not None:
                status = int(e.response.status_code)
                if 400 <= status < 500 and status != 429:
                    raise RpcError(f"{method}: HTTP {status}") from e
            if attempt >= max_attempts:
                raise RpcError(f"{method}: giving up after {attempt} attempts: {e}") from e

            sleep_s = backoff_base_s * (2 ** (attempt - 1)) + random.uniform(0, 0.25)
            time.sleep(sleep_s)

    raise RuntimeError("unreachable")


def chain_get_finalized_head(rpc_url: str) -> str:
    return rpc_call(rpc_url, "chain_getFinalizedHead", [])


def chain_get_header_number(rpc_url: str, block_hash: str) -> int:
    header = rpc_call(rpc_url, "chain_getHeader", [block_hash])
    if not isinstance(header, dict) or "number" not in header:
        raise RpcError(f"unexpected chain_getHeader response for {block_hash}: {header}")
    try:
        return int(header["number"], 16)
    except (TypeError, ValueError) as e:
        raise RpcError(f"unexpected block number in chain_getHeader response for {block_hash}: {header['number']!r}") from e


def state_get_keys_paged(rpc_url: str, prefix: str, count: int, start_key: str | None, at: str) -> list[str]:
    return rpc_call(rpc_url, "state_getKeysPaged", [prefix, count, start_key, at]) or []


def state_query_storage_at(rpc_url: str, keys: list[str], at: str) -> dict[str, str | None]:
    # Returns {key: scale_hex_or_None}; the node answers with one change set per block.
    res = rpc_call(rpc_url, "state_queryStorageAt", [keys, at])
    out: dict[str, str | None] = {}
    for change_set in res or []:
        for key, value in change_set.get("changes") or []:
            out[key] = value
    return out


def state_get_storage(rpc_url: str, key: str, at: str) -> str | None:
    return rpc_call(rpc_url, "state_getStorage", [key, at])
