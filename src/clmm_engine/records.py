"""
Fixed-width little-endian records for Pool, TickArray and Position.

Every record has a constant size and no variable-length fields: identifiers are null-padded
ASCII, u128/i128 values are two little-endian u64 halves, and optional time windows carry a
one-byte presence flag. A TickArray stores all 88 slots, each with its own initialized marker.

Layouts (field order):
  Pool:      token_a, token_b, tick_spacing, sqrt_price, tick_current_index, fee_rate,
             protocol_fee_rate, default_referral_fee_rate, liquidity, fee_growth_global_a/b,
             protocol_fee_owed_a/b, reward_last_updated_timestamp, 3 x reward stream
             (token, authority, emissions_per_second_x64, growth_global_x64), swap window,
             lp window.
  TickArray: start_index, tick_spacing, 88 x tick (initialized, liquidity_net,
             liquidity_gross, fee_growth_outside_a/b, 3 x reward_growth_outside).
  Position:  position_id, owner, pool, tick_lower, tick_upper, liquidity,
             fee_growth_checkpoint_a/b, fee_owed_a/b, 3 x (growth_inside_checkpoint, amount_owed).
"""
from __future__ import annotations

import struct
from typing import Iterator, List, Optional, Tuple

from .core.constants import NUM_REWARDS, TICK_ARRAY_SIZE, U64_MAX
from .core.datatypes import EMPTY_TICK, PositionRewardInfo, RewardInfo, Tick, TimeWindow
from .core.exc import AmountDomainError
from .pool import Pool
from .position import Position
from .tick_array import TickArray

#: width of token, owner and authority identifiers
IDENT_SIZE = 32
#: width of a pool address ("<token_a>/<token_b>/<tick_spacing>")
POOL_ADDRESS_SIZE = 72

_U128 = "QQ"
_IDENT = f"{IDENT_SIZE}s"
_WINDOW = "Bqq"

_REWARD_FMT = _IDENT + _IDENT + _U128 + _U128
_POOL_STRUCT = struct.Struct(
    "<" + _IDENT + _IDENT + "H" + _U128 + "i" + "HHH" + _U128 + _U128 + _U128 + "QQ" + "Q"
    + _REWARD_FMT * NUM_REWARDS + _WINDOW + _WINDOW
)
_TICK_STRUCT = struct.Struct("<" + "B" + _U128 * 2 + _U128 * 2 + _U128 * NUM_REWARDS)
_TICK_ARRAY_HEADER = struct.Struct("<iH")
_POSITION_STRUCT = struct.Struct(
    "<" + _IDENT + _IDENT + f"{POOL_ADDRESS_SIZE}s" + "ii" + _U128 + _U128 + _U128 + "QQ"
    + (_U128 + "Q") * NUM_REWARDS
)

POOL_RECORD_SIZE = _POOL_STRUCT.size
TICK_RECORD_SIZE = _TICK_STRUCT.size
TICK_ARRAY_RECORD_SIZE = _TICK_ARRAY_HEADER.size + TICK_ARRAY_SIZE * TICK_RECORD_SIZE
POSITION_RECORD_SIZE = _POSITION_STRUCT.size

_MASK64 = U64_MAX
_I128_MOD = 1 << 128


# ----------------------------
# Field helpers
# ----------------------------

def _split(value: int) -> Tuple[int, int]:
    return value & _MASK64, value >> 64


def _split_signed(value: int) -> Tuple[int, int]:
    return _split(value % _I128_MOD)


def _join(fields: Iterator[int]) -> int:
    lo = next(fields)
    hi = next(fields)
    return lo | (hi << 64)


def _join_signed(fields: Iterator[int]) -> int:
    value = _join(fields)
    return value - _I128_MOD if value >> 127 else value


def _encode_ident(value: str, size: int = IDENT_SIZE) -> bytes:
    raw = value.encode("ascii")
    if len(raw) > size or b"\x00" in raw:
        raise AmountDomainError(f"identifier {value!r} does not fit {size} null-padded ASCII bytes")
    return raw.ljust(size, b"\x00")


def _decode_ident(raw: bytes) -> str:
    return raw.rstrip(b"\x00").decode("ascii")


def _window_fields(window: Optional[TimeWindow]) -> Tuple[int, int, int]:
    if window is None:
        return 0, 0, 0
    return 1, window.start, window.end


def _read_window(fields: Iterator) -> Optional[TimeWindow]:
    present, start, end = next(fields), next(fields), next(fields)
    return TimeWindow(start, end) if present else None


def _check_size(data: bytes, size: int, what: str) -> None:
    if len(data) != size:
        raise AmountDomainError(f"{what} record must be {size} bytes, got {len(data)}")


# ----------------------------
# Pool
# ----------------------------

def encode_pool(pool: Pool) -> bytes:
    values: List = [
        _encode_ident(pool.token_a),
        _encode_ident(pool.token_b),
        pool.tick_spacing,
        *_split(pool.sqrt_price),
        pool.tick_current_index,
        pool.fee_rate,
        pool.protocol_fee_rate,
        pool.default_referral_fee_rate,
        *_split(pool.liquidity),
        *_split(pool.fee_growth_global_a),
        *_split(pool.fee_growth_global_b),
        pool.protocol_fee_owed_a,
        pool.protocol_fee_owed_b,
        pool.reward_last_updated_timestamp,
    ]
    for info in pool.reward_infos:
        values += [
            _encode_ident(info.token),
            _encode_ident(info.authority),
            *_split(info.emissions_per_second_x64),
            *_split(info.growth_global_x64),
        ]
    values += [*_window_fields(pool.swap_window), *_window_fields(pool.lp_window)]
    return _POOL_STRUCT.pack(*values)


def decode_pool(data: bytes) -> Pool:
    _check_size(data, POOL_RECORD_SIZE, "pool")
    fields = iter(_POOL_STRUCT.unpack(data))
    token_a = _decode_ident(next(fields))
    token_b = _decode_ident(next(fields))
    tick_spacing = next(fields)
    sqrt_price = _join(fields)
    tick_current_index = next(fields)
    fee_rate, protocol_fee_rate, referral_fee_rate = next(fields), next(fields), next(fields)
    liquidity = _join(fields)
    fee_growth_global_a = _join(fields)
    fee_growth_global_b = _join(fields)
    owed_a, owed_b, last_updated = next(fields), next(fields), next(fields)
    infos = []
    for _ in range(NUM_REWARDS):
        token = _decode_ident(next(fields))
        authority = _decode_ident(next(fields))
        emissions = _join(fields)
        growth = _join(fields)
        infos.append(RewardInfo(token, authority, emissions, growth))
    return Pool(
        token_a=token_a,
        token_b=token_b,
        tick_spacing=tick_spacing,
        sqrt_price=sqrt_price,
        tick_current_index=tick_current_index,
        fee_rate=fee_rate,
        protocol_fee_rate=protocol_fee_rate,
        default_referral_fee_rate=referral_fee_rate,
        liquidity=liquidity,
        fee_growth_global_a=fee_growth_global_a,
        fee_growth_global_b=fee_growth_global_b,
        protocol_fee_owed_a=owed_a,
        protocol_fee_owed_b=owed_b,
        reward_infos=tuple(infos),
        reward_last_updated_timestamp=last_updated,
        swap_window=_read_window(fields),
        lp_window=_read_window(fields),
    )


# ----------------------------
# TickArray
# ----------------------------

def _encode_tick(tick: Tick) -> bytes:
    values = [
        1 if tick.initialized else 0,
        *_split_signed(tick.liquidity_net),
        *_split(tick.liquidity_gross),
        *_split(tick.fee_growth_outside_a),
        *_split(tick.fee_growth_outside_b),
    ]
    for growth in tick.reward_growths_outside:
        values += _split(growth)
    return _TICK_STRUCT.pack(*values)


def _decode_tick(data: bytes) -> Tick:
    fields = iter(_TICK_STRUCT.unpack(data))
    initialized = next(fields)
    tick = Tick(
        liquidity_net=_join_signed(fields),
        liquidity_gross=_join(fields),
        fee_growth_outside_a=_join(fields),
        fee_growth_outside_b=_join(fields),
        reward_growths_outside=tuple(_join(fields) for _ in range(NUM_REWARDS)),
    )
    if not initialized:
        return EMPTY_TICK
    return tick


def encode_tick_array(page: TickArray) -> bytes:
    parts = [_TICK_ARRAY_HEADER.pack(page.start_index, page.tick_spacing)]
    parts += [_encode_tick(tick) for tick in page.ticks]
    return b"".join(parts)


def decode_tick_array(data: bytes) -> TickArray:
    _check_size(data, TICK_ARRAY_RECORD_SIZE, "tick array")
    start_index, tick_spacing = _TICK_ARRAY_HEADER.unpack_from(data)
    page = TickArray(start_index, tick_spacing)
    offset = _TICK_ARRAY_HEADER.size
    for i in range(TICK_ARRAY_SIZE):
        page.ticks[i] = _decode_tick(data[offset:offset + TICK_RECORD_SIZE])
        offset += TICK_RECORD_SIZE
    return page


# ----------------------------
# Position
# ----------------------------

def encode_position(position: Position) -> bytes:
    values: List = [
        _encode_ident(position.position_id),
        _encode_ident(position.owner),
        _encode_ident(position.pool, POOL_ADDRESS_SIZE),
        position.tick_lower,
        position.tick_upper,
        *_split(position.liquidity),
        *_split(position.fee_growth_checkpoint_a),
        *_split(position.fee_growth_checkpoint_b),
        position.fee_owed_a,
        position.fee_owed_b,
    ]
    for info in position.reward_infos:
        values += [*_split(info.growth_inside_checkpoint), info.amount_owed]
    return _POSITION_STRUCT.pack(*values)


def decode_position(data: bytes) -> Position:
    _check_size(data, POSITION_RECORD_SIZE, "position")
    fields = iter(_POSITION_STRUCT.unpack(data))
    position_id = _decode_ident(next(fields))
    owner = _decode_ident(next(fields))
    pool = _decode_ident(next(fields))
    tick_lower, tick_upper = next(fields), next(fields)
    liquidity = _join(fields)
    checkpoint_a = _join(fields)
    checkpoint_b = _join(fields)
    owed_a, owed_b = next(fields), next(fields)
    rewards = []
    for _ in range(NUM_REWARDS):
        checkpoint = _join(fields)
        rewards.append(PositionRewardInfo(growth_inside_checkpoint=checkpoint, amount_owed=next(fields)))
    return Position(
        position_id=position_id,
        owner=owner,
        pool=pool,
        tick_lower=tick_lower,
        tick_upper=tick_upper,
        liquidity=liquidity,
        fee_growth_checkpoint_a=checkpoint_a,
        fee_growth_checkpoint_b=checkpoint_b,
        fee_owed_a=owed_a,
        fee_owed_b=owed_b,
        reward_infos=tuple(rewards),
    )


__all__ = [
    "IDENT_SIZE",
    "POOL_ADDRESS_SIZE",
    "POOL_RECORD_SIZE",
    "TICK_RECORD_SIZE",
    "TICK_ARRAY_RECORD_SIZE",
    "POSITION_RECORD_SIZE",
    "encode_pool",
    "decode_pool",
    "encode_tick_array",
    "decode_tick_array",
    "encode_position",
    "decode_position",
]
