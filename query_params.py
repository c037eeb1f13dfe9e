"""
Query parameter validation for the explorer API gateway
Parses, defaults and bounds-checks request parameters before any upstream call
"""

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Mapping, Optional

from errors import InvalidParamError, MissingParamError, OverLimitError

ADDRESS_LENGTH = 42
CHART_WINDOW_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class PaginationRule:
    """Default and bounds for a page-size parameter"""

    default: int
    maximum: int
    minimum: int = 1


ACCOUNT_TXS_ROWS = PaginationRule(default=10, maximum=50)
TOKENS_LIMIT = PaginationRule(default=100, maximum=1000)
ASSET_ROWS = PaginationRule(default=20, maximum=100)
CURSOR_LIMIT = PaginationRule(default=20, maximum=100)


@dataclass(frozen=True)
class ResourceQuery:
    """A resource name plus its validated parameters"""

    resource: str
    params: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.params[key]

    def get(self, key: str, default: Any = None) -> Any:
        return self.params.get(key, default)


# ==================== PRIMITIVES ====================


def parse_int(raw: Any, default: int) -> int:
    """Parse an integer, falling back to default when absent or non-numeric"""
    if raw is None or isinstance(raw, bool):
        return default
    if isinstance(raw, int):
        return raw
    try:
        return int(str(raw).strip())
    except ValueError:
        return default


def require(raw: Mapping[str, Any], name: str, label: Optional[str] = None) -> str:
    value = raw.get(name)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise MissingParamError(f"{label or name} is required")
    return str(value).strip()


def require_address(raw: Mapping[str, Any], name: str = "address") -> str:
    address = require(raw, name)
    if len(address) != ADDRESS_LENGTH:
        raise InvalidParamError(f"{name} is invalid")
    return address


def require_timestamp(raw: Mapping[str, Any], name: str) -> int:
    value = require(raw, name)
    try:
        parsed = int(value)
    except ValueError:
        raise InvalidParamError(f"'{name}' must be unix seconds")
    if parsed < 0:
        raise InvalidParamError(f"'{name}' cannot be negative")
    return parsed


def bounded(raw: Mapping[str, Any], name: str, rule: PaginationRule) -> int:
    value = parse_int(raw.get(name), rule.default)
    if value < rule.minimum:
        raise InvalidParamError(f"'{name}' cannot be less than {rule.minimum}")
    if value > rule.maximum:
        raise OverLimitError(f"'{name}' cannot be greater than {rule.maximum}")
    return value


def page_number(raw: Mapping[str, Any]) -> int:
    return max(1, parse_int(raw.get("page"), 1))


def cursor_window(raw: Mapping[str, Any]) -> Dict[str, int]:
    return {
        "before": max(0, parse_int(raw.get("before"), 0)),
        "after": max(0, parse_int(raw.get("after"), 0)),
        "limit": bounded(raw, "limit", CURSOR_LIMIT),
    }


# ==================== PER-RESOURCE RULES ====================


def validate_account(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("account", {"address": require_address(raw)})


def validate_account_txs(raw: Mapping[str, Any]) -> ResourceQuery:
    address = require_address(raw)
    return ResourceQuery(
        "account_txs",
        {
            "address": address,
            "page": page_number(raw),
            "rows": bounded(raw, "rows", ACCOUNT_TXS_ROWS),
        },
    )


def validate_validator(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("validator", {"address": require(raw, "address")})


def validate_tokens(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery(
        "tokens",
        {
            "limit": bounded(raw, "limit", TOKENS_LIMIT),
            "offset": max(0, parse_int(raw.get("offset"), 0)),
        },
    )


def validate_order(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("order", {"id": require(raw, "id", "order id")})


def validate_txs(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("txs", cursor_window(raw))


def validate_tx_hash(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("tx", {"hash": require(raw, "hash")})


def validate_txs_by_type(raw: Mapping[str, Any]) -> ResourceQuery:
    tx_type = require(raw, "type")
    start_time = require_timestamp(raw, "startTime")
    end_time = require_timestamp(raw, "endTime")
    if start_time > end_time:
        raise InvalidParamError("'startTime' cannot be after 'endTime'")

    params = {"type": tx_type, "start_time": start_time, "end_time": end_time}
    params.update(cursor_window(raw))
    return ResourceQuery("txs_by_type", params)


def validate_blocks(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("blocks", cursor_window(raw))


def validate_asset(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery("asset", {"asset": require(raw, "asset")})


def validate_assets(raw: Mapping[str, Any]) -> ResourceQuery:
    return ResourceQuery(
        "assets",
        {"page": page_number(raw), "rows": bounded(raw, "rows", ASSET_ROWS)},
    )


def validate_asset_holders(raw: Mapping[str, Any]) -> ResourceQuery:
    asset = require(raw, "asset")
    return ResourceQuery(
        "asset_holders",
        {
            "asset": asset,
            "page": page_number(raw),
            "rows": bounded(raw, "rows", ASSET_ROWS),
        },
    )


def validate_asset_txs(raw: Mapping[str, Any]) -> ResourceQuery:
    tx_asset = require(raw, "txAsset")
    return ResourceQuery(
        "asset_txs",
        {
            "asset": tx_asset,
            "page": page_number(raw),
            "rows": bounded(raw, "rows", ASSET_ROWS),
        },
    )


def validate_market(raw: Mapping[str, Any], default_coin: str) -> ResourceQuery:
    coin_id = (raw.get("id") or "").strip() or default_coin
    return ResourceQuery("market", {"id": coin_id})


def validate_market_chart(
    raw: Mapping[str, Any], default_coin: str, now: Optional[int] = None
) -> ResourceQuery:
    """Chart range defaults to the 24 hours ending now"""
    coin_id = (raw.get("id") or "").strip() or default_coin
    now = int(time.time()) if now is None else now
    to_ts = parse_int(raw.get("to"), now)
    from_ts = parse_int(raw.get("from"), to_ts - CHART_WINDOW_SECONDS)
    if from_ts > to_ts:
        raise InvalidParamError("'from' cannot be after 'to'")
    return ResourceQuery("market_chart", {"id": coin_id, "from": from_ts, "to": to_ts})


def no_params(resource: str) -> Callable[[Mapping[str, Any]], ResourceQuery]:
    def validate(raw: Mapping[str, Any]) -> ResourceQuery:
        return ResourceQuery(resource)

    return validate


VALIDATORS: Dict[str, Callable[..., ResourceQuery]] = {
    "account": validate_account,
    "account_txs": validate_account_txs,
    "validators": no_params("validators"),
    "validator": validate_validator,
    "tokens": validate_tokens,
    "order": validate_order,
    "fees": no_params("fees"),
    "status": no_params("status"),
    "txs": validate_txs,
    "tx": validate_tx_hash,
    "txs_by_type": validate_txs_by_type,
    "blocks": validate_blocks,
    "asset": validate_asset,
    "assets": validate_assets,
    "asset_holders": validate_asset_holders,
    "asset_txs": validate_asset_txs,
    "market": validate_market,
    "market_chart": validate_market_chart,
}


def validate(resource: str, raw: Mapping[str, Any], **options: Any) -> ResourceQuery:
    """
    Validate raw parameters for a named resource

    Extra keyword options are passed to the resource rule (market data
    takes its default coin this way).
    """
    try:
        rule = VALIDATORS[resource]
    except KeyError:
        raise ValueError(f"Unknown resource: {resource}")
    return rule(raw, **options)
