"""
Response normalizer for the explorer API gateway
Maps heterogeneous upstream payloads into stable canonical records
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

TRANSFER_TX_TYPES = frozenset({"TRANSFER"})

_RFC3339 = re.compile(
    r"^(?P<date>\d{4}-\d{2}-\d{2})[T ](?P<time>\d{2}:\d{2}:\d{2})"
    r"(?:\.(?P<frac>\d{1,9})\d*)?"
    r"\s*(?P<tz>Z|z|UTC|[+-]\d{2}:?\d{2})?$"
)


class PayloadShapeError(ValueError):
    """Upstream payload does not have the fields a canonical record needs"""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ==================== TIMESTAMPS ====================


@dataclass(frozen=True)
class Timestamp:
    """UTC instant with nanosecond precision"""

    moment: datetime
    nanos: int = 0

    def isoformat(self) -> str:
        m = self.moment
        text = f"{m.year:04d}-{m.month:02d}-{m.day:02d}T{m.hour:02d}:{m.minute:02d}:{m.second:02d}"
        if self.nanos:
            text += "." + f"{self.nanos:09d}".rstrip("0")
        return text + "Z"


def parse_timestamp(value: str) -> Timestamp:
    """Parse an RFC 3339 timestamp, keeping nanoseconds and converting to UTC"""
    match = _RFC3339.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise PayloadShapeError(f"invalid timestamp: {value!r}")

    try:
        moment = datetime.strptime(
            f"{match.group('date')}T{match.group('time')}", "%Y-%m-%dT%H:%M:%S"
        )
    except ValueError:
        raise PayloadShapeError(f"invalid timestamp: {value!r}")
    tz = match.group("tz")
    if tz and tz[0] in "+-":
        digits = tz[1:].replace(":", "")
        offset = timedelta(hours=int(digits[:2]), minutes=int(digits[2:]))
        try:
            moment -= offset if tz[0] == "+" else -offset
        except OverflowError:
            raise PayloadShapeError(f"timestamp out of range: {value!r}")

    nanos = int((match.group("frac") or "").ljust(9, "0"))
    return Timestamp(moment=moment.replace(tzinfo=timezone.utc), nanos=nanos)


def seconds_between(later: Timestamp, earlier: Timestamp) -> float:
    """Elapsed seconds from earlier to later"""
    delta = later.moment - earlier.moment
    whole = delta.days * 86400 + delta.seconds
    return (whole * 10**9 + later.nanos - earlier.nanos) / 10**9


def format_time(value: Any) -> str:
    if value is None or value == "":
        return ""
    return parse_timestamp(value).isoformat()


def format_datetime(value: datetime) -> str:
    value = value.astimezone(timezone.utc)
    return Timestamp(value.replace(microsecond=0), value.microsecond * 1000).isoformat()


# ==================== FIELD HELPERS ====================


def _dig(payload: Any, *path: str) -> Any:
    current = payload
    for key in path:
        if not isinstance(current, dict) or key not in current:
            raise PayloadShapeError(f"missing field: {'.'.join(path)}")
        current = current[key]
    return current


def _int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise PayloadShapeError(f"expected an integer, got {value!r}")


def _str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    return str(value)


def _object(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise PayloadShapeError(f"{what} must be an object")
    return payload


def _objects(payload: Any, what: str) -> List[Dict[str, Any]]:
    if not isinstance(payload, list) or not all(isinstance(i, dict) for i in payload):
        raise PayloadShapeError(f"{what} must be a list of objects")
    return payload


# ==================== VALIDATORS ====================


def normalize_validator(raw: Dict[str, Any], index: int, observed_at: datetime) -> Dict[str, Any]:
    """Flatten one upstream validator record"""
    raw = _object(raw, "validator")
    description = _object(raw.get("description") or {}, "validator description")
    commission = _object(raw.get("commission") or {}, "validator commission")
    rates = _object(commission.get("commission_rates") or commission, "commission rates")

    return {
        "id": index,
        "moniker": _str(description.get("moniker")),
        "account_address": _str(raw.get("account_address")),
        "operator_address": _str(raw.get("operator_address")),
        "consensus_address": _str(raw.get("consensus_address")),
        "jailed": bool(raw.get("jailed", False)),
        "status": _str(raw.get("status")),
        "tokens": _str(raw.get("tokens"), "0"),
        "voting_power": _int(raw.get("power", raw.get("voting_power"))),
        "delegator_shares": _str(raw.get("delegator_shares"), "0"),
        "bond_height": _int(raw.get("bond_height")),
        "bond_intra_tx_counter": _int(raw.get("bond_intra_tx_counter")),
        "unbonding_height": _int(raw.get("unbonding_height")),
        "unbonding_time": format_time(raw.get("unbonding_time")),
        "commission_rate": _str(rates.get("rate"), "0"),
        "commission_max_rate": _str(rates.get("max_rate"), "0"),
        "commission_max_change_rate": _str(rates.get("max_change_rate"), "0"),
        "commission_update_time": format_time(commission.get("update_time")),
        "timestamp": format_datetime(observed_at),
    }


def normalize_validators(raws: List[Dict[str, Any]], observed_at: datetime) -> List[Dict[str, Any]]:
    """Index validators by their position in the upstream list"""
    return [
        normalize_validator(raw, index, observed_at)
        for index, raw in enumerate(_objects(raws, "validators"))
    ]


# ==================== ACCOUNTS ====================


def normalize_account(raw: Dict[str, Any]) -> Dict[str, Any]:
    raw = _object(raw, "account")
    balances = _objects(raw.get("balances") or [], "account balances")
    return {
        "address": _str(raw.get("address")),
        "public_key": raw.get("public_key") or [],
        "account_number": _int(raw.get("account_number")),
        "sequence": _int(raw.get("sequence")),
        "balances": [
            {
                "symbol": _str(balance.get("symbol")),
                "free": _str(balance.get("free"), "0"),
                "locked": _str(balance.get("locked"), "0"),
                "frozen": _str(balance.get("frozen"), "0"),
            }
            for balance in balances
        ],
    }


_ACCOUNT_TX_FIELDS = (
    # (canonical key, upstream key, default)
    ("blockHeight", "blockHeight", 0),
    ("txHash", "txHash", ""),
    ("code", "code", 0),
    ("txType", "txType", ""),
    ("txAsset", "txAsset", ""),
    ("txQuoteAsset", "txQuoteAsset", ""),
    ("value", "value", ""),
    ("txFee", "txFee", ""),
    ("txAge", "txAge", 0),
    ("fromAddr", "fromAddr", ""),
    ("toAddr", "toAddr", ""),
    ("log", "log", ""),
    ("confirmBlocks", "confirmBlocks", 0),
    ("memo", "memo", ""),
    ("source", "source", 0),
    ("timestamp", "timeStamp", 0),
)


def decode_tx_message(tx_type: str, data: Any) -> Optional[Dict[str, Any]]:
    """
    Decode the JSON-encoded message data carried by non-transfer txs

    Transfers carry no message. Raises ValueError when the embedded
    string is not a JSON object.
    """
    if tx_type in TRANSFER_TX_TYPES or not data:
        return None
    if not isinstance(data, (str, bytes)):
        raise ValueError(f"message data is a {type(data).__name__}, not a JSON string")
    message = json.loads(data)
    if not isinstance(message, dict):
        raise ValueError(f"message data is a JSON {type(message).__name__}, not an object")
    return message


def normalize_account_tx(raw: Dict[str, Any]) -> Dict[str, Any]:
    entry = {
        key: raw.get(source) if raw.get(source) is not None else default
        for key, source, default in _ACCOUNT_TX_FIELDS
    }

    try:
        message = decode_tx_message(_str(entry["txType"]), raw.get("data"))
    except ValueError as e:
        logger.warning(f"Failed to decode message data for tx {entry['txHash']}: {e}")
        message = None

    if message is not None:
        entry["message"] = message
    return entry


def normalize_account_txs(raw: Dict[str, Any]) -> Dict[str, Any]:
    raw = _object(raw, "account txs")
    tx_array = _objects(raw.get("txArray") or [], "txArray")
    return {
        "txNums": _int(raw.get("txNums")),
        "txArray": [normalize_account_tx(tx) for tx in tx_array],
    }


# ==================== STATUS ====================


def block_timestamp(block: Dict[str, Any]) -> Timestamp:
    return parse_timestamp(_dig(block, "block", "header", "time"))


def validator_count(validator_set: Dict[str, Any]) -> int:
    if "total" in validator_set:
        return _int(validator_set["total"])
    validators = validator_set.get("validators")
    if not isinstance(validators, list):
        raise PayloadShapeError("validator set has no validators list")
    return len(validators)


def status_height(status: Dict[str, Any]) -> int:
    """Latest block height from a well-formed chain status"""
    return normalize_status(status, None, None, None)["latest_block_height"]


def normalize_status(
    status: Optional[Dict[str, Any]],
    validator_set: Optional[Dict[str, Any]],
    block: Optional[Dict[str, Any]],
    prev_block: Optional[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Combine chain status, validator set and the two latest blocks

    Any input may be None when a best-effort aggregation tolerated its
    failure; the matching fields then fall back to zero values.
    """
    chain_id, height, latest_time = "", 0, ""
    if status is not None:
        chain_id = _str(_dig(status, "node_info", "network"))
        height = _int(_dig(status, "sync_info", "latest_block_height"))
        latest_time = _str(_dig(status, "sync_info", "latest_block_time"))

    block_time = 0.0
    if block is not None and prev_block is not None:
        block_time = seconds_between(block_timestamp(block), block_timestamp(prev_block))

    return {
        "chain_id": chain_id,
        "block_time": block_time,
        "latest_block_height": height,
        "total_validator_num": validator_count(validator_set) if validator_set is not None else 0,
        "timestamp": latest_time,
    }


# ==================== PASS-THROUGH RESOURCES ====================


def normalize_object(raw: Any, what: str) -> Dict[str, Any]:
    return dict(_object(raw, what))


def normalize_list(raw: Any, what: str) -> List[Dict[str, Any]]:
    return [dict(item) for item in _objects(raw, what)]


def normalize_tx_page(raw: Dict[str, Any]) -> Dict[str, Any]:
    raw = _object(raw, "tx page")
    txs = _objects(raw.get("data") or [], "txs")
    return {"txs": [dict(tx) for tx in txs], "total": _int(raw.get("total"), len(txs))}


def normalize_blocks(raw: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"blocks": normalize_list(raw, "blocks")}


# ==================== MARKET DATA ====================


def _usd(market_data: Dict[str, Any], key: str) -> Any:
    value = market_data.get(key)
    if isinstance(value, dict):
        return value.get("usd")
    return value


def normalize_market(raw: Dict[str, Any]) -> Dict[str, Any]:
    raw = _object(raw, "market data")
    market_data = _object(raw.get("market_data") or {}, "market_data")
    return {
        "id": _str(raw.get("id")),
        "symbol": _str(raw.get("symbol")),
        "name": _str(raw.get("name")),
        "current_price": _usd(market_data, "current_price"),
        "market_cap": _usd(market_data, "market_cap"),
        "total_volume": _usd(market_data, "total_volume"),
        "high_24h": _usd(market_data, "high_24h"),
        "low_24h": _usd(market_data, "low_24h"),
        "price_change_percentage_24h": market_data.get("price_change_percentage_24h"),
        "circulating_supply": market_data.get("circulating_supply"),
        "total_supply": market_data.get("total_supply"),
        "last_updated": _str(raw.get("last_updated")),
    }


def _chart_points(series: Any, what: str) -> List[Dict[str, Any]]:
    if series is None:
        return []
    if not isinstance(series, list):
        raise PayloadShapeError(f"{what} must be a list")
    points = []
    for pair in series:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            raise PayloadShapeError(f"{what} entries must be [timestamp, value] pairs")
        points.append({"timestamp": pair[0], "value": pair[1]})
    return points


def normalize_market_chart(raw: Dict[str, Any]) -> Dict[str, Any]:
    raw = _object(raw, "market chart")
    return {
        "prices": _chart_points(raw.get("prices"), "prices"),
        "market_caps": _chart_points(raw.get("market_caps"), "market_caps"),
        "total_volumes": _chart_points(raw.get("total_volumes"), "total_volumes"),
    }
