"""
Aggregation gateway for the Mintscan explorer API
Runs the validate -> fetch -> normalize pipeline for every resource
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import query_params
from config import BEST_EFFORT, FAIL_CLOSED, FAILURE_POLICIES
from errors import AggregationError, UpstreamDecodeError
from normalizer import (
    Clock,
    PayloadShapeError,
    block_timestamp,
    normalize_account,
    normalize_account_txs,
    normalize_blocks,
    normalize_list,
    normalize_market,
    normalize_market_chart,
    normalize_object,
    normalize_status,
    normalize_tx_page,
    normalize_validator,
    normalize_validators,
    status_height,
    utc_now,
    validator_count,
)
from upstream_client import ConsensusRPCClient, UpstreamClient, UpstreamClients

logger = logging.getLogger(__name__)


def _normalize(client: UpstreamClient, normalize: Callable[..., Any], raw: Any, *args: Any) -> Any:
    """Run a normalizer, reporting shape problems as decode failures"""
    try:
        return normalize(raw, *args)
    except PayloadShapeError as e:
        logger.error(f"Failed to normalize {client.name} payload: {e}")
        raise UpstreamDecodeError(
            f"{client.name} returned an unexpected payload: {e}", upstream=client.name
        ) from e


# ==================== STATUS AGGREGATE ====================


class StatusAggregator:
    """
    Builds the chain status aggregate from four consensus RPC calls

    status -> latest height -> {validator set, block(h), block(h - 1)}

    With the fail-closed policy the first failing step aborts the whole
    aggregate. With best-effort each failure is logged and the dependent
    fields fall back to zero values; steps whose height is unknown are
    skipped rather than queried.
    """

    def __init__(self, rpc: ConsensusRPCClient, policy: str = FAIL_CLOSED):
        if policy not in FAILURE_POLICIES:
            raise ValueError(f"Unknown failure policy: {policy}")
        self.rpc = rpc
        self.policy = policy

    def aggregate(self) -> Dict[str, Any]:
        status, height = self._step("status", self.rpc.status, check=status_height)
        height = height or 0

        validator_set = self._at_height(
            "validator set", self.rpc.validator_set, height, check=validator_count
        )
        block = self._at_height("block", self.rpc.block, height, check=block_timestamp)
        prev_block = self._at_height(
            "previous block", self.rpc.block, height - 1, check=block_timestamp
        )

        return _normalize(
            self.rpc, normalize_status, status, validator_set, block, prev_block
        )

    def _at_height(
        self,
        name: str,
        fetch: Callable[[int], Dict[str, Any]],
        height: int,
        check: Callable[[Dict[str, Any]], Any],
    ) -> Optional[Dict[str, Any]]:
        if height < 1:
            logger.warning(f"Skipping {name} query: no usable block height ({height})")
            return None
        payload, _ = self._step(name, fetch, height, check=check)
        return payload

    def _step(
        self,
        name: str,
        fetch: Callable[..., Dict[str, Any]],
        *args: Any,
        check: Callable[[Dict[str, Any]], Any],
    ) -> Tuple[Optional[Dict[str, Any]], Any]:
        """Fetch one payload and return it with its checked value"""
        try:
            payload = fetch(*args)
            return payload, _normalize(self.rpc, check, payload)
        except AggregationError as e:
            if self.policy == BEST_EFFORT:
                logger.warning(f"failed to query {name}: {e}")
                return None, None
            logger.error(f"failed to query {name}: {e}")
            raise


# ==================== GATEWAY ====================


class AggregationGateway:
    """
    One operation per resource; every operation takes the raw request
    parameters and returns a canonical payload or raises AggregationError.
    """

    def __init__(
        self,
        clients: UpstreamClients,
        status_policy: str = FAIL_CLOSED,
        market_coin_id: str = "binancecoin",
        clock: Clock = utc_now,
    ):
        self.clients = clients
        self.market_coin_id = market_coin_id
        self.clock = clock
        self.status_aggregator = StatusAggregator(clients.rpc, status_policy)

    @classmethod
    def from_config(cls, cfg, clients: UpstreamClients) -> "AggregationGateway":
        return cls(
            clients,
            status_policy=cfg.STATUS_FAILURE_POLICY,
            market_coin_id=cfg.MARKET_COIN_ID,
        )

    # ------- Accounts -------

    def get_account(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("account", params)
        api = self.clients.api
        return _normalize(api, normalize_account, api.account(query["address"]))

    def get_account_txs(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("account_txs", params)
        explorer = self.clients.explorer
        raw = explorer.account_txs(query["address"], query["page"], query["rows"])
        return _normalize(explorer, normalize_account_txs, raw)

    # ------- Validators -------

    def get_validators(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        query_params.validate("validators", params)
        api = self.clients.api
        return _normalize(api, normalize_validators, api.validators(), self.clock())

    def get_validator(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("validator", params)
        api = self.clients.api
        raw = api.validator(query["address"])
        return _normalize(api, normalize_validator, raw, 0, self.clock())

    # ------- Tokens, orders, fees -------

    def get_tokens(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        query = query_params.validate("tokens", params)
        api = self.clients.api
        return _normalize(api, normalize_list, api.tokens(query["limit"], query["offset"]), "tokens")

    def get_order(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("order", params)
        accelerated = self.clients.accelerated
        return _normalize(accelerated, normalize_object, accelerated.order(query["id"]), "order")

    def get_fees(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        query_params.validate("fees", params)
        accelerated = self.clients.accelerated
        return _normalize(accelerated, normalize_list, accelerated.tx_msg_fees(), "fees")

    # ------- Chain status -------

    def get_status(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query_params.validate("status", params)
        return self.status_aggregator.aggregate()

    # ------- Transactions and blocks -------

    def get_txs(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("txs", params)
        api = self.clients.api
        raw = api.txs(query["before"], query["after"], query["limit"])
        return _normalize(api, normalize_tx_page, raw)

    def get_tx_by_hash(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("tx", params)
        api = self.clients.api
        return _normalize(api, normalize_object, api.tx_by_hash(query["hash"]), "tx")

    def get_txs_by_type(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("txs_by_type", params)
        api = self.clients.api
        raw = api.txs_by_type_and_time(
            query["type"],
            query["start_time"],
            query["end_time"],
            query["before"],
            query["after"],
            query["limit"],
        )
        return _normalize(api, normalize_tx_page, raw)

    def get_blocks(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("blocks", params)
        api = self.clients.api
        raw = api.blocks(query["before"], query["after"], query["limit"])
        return _normalize(api, normalize_blocks, raw)

    # ------- Assets -------

    def get_asset(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("asset", params)
        explorer = self.clients.explorer
        return _normalize(explorer, normalize_object, explorer.asset(query["asset"]), "asset")

    def get_assets(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("assets", params)
        explorer = self.clients.explorer
        raw = explorer.assets(query["page"], query["rows"])
        return _normalize(explorer, normalize_object, raw, "assets")

    def get_asset_holders(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("asset_holders", params)
        explorer = self.clients.explorer
        raw = explorer.asset_holders(query["asset"], query["page"], query["rows"])
        return _normalize(explorer, normalize_object, raw, "asset holders")

    def get_asset_txs(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("asset_txs", params)
        explorer = self.clients.explorer
        raw = explorer.asset_txs(query["asset"], query["page"], query["rows"])
        return _normalize(explorer, normalize_object, raw, "asset txs")

    # ------- Market data -------

    def get_market(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("market", params, default_coin=self.market_coin_id)
        market = self.clients.market
        return _normalize(market, normalize_market, market.coin_market_data(query["id"]))

    def get_market_chart(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        query = query_params.validate("market_chart", params, default_coin=self.market_coin_id)
        market = self.clients.market
        raw = market.coin_market_chart(query["id"], query["from"], query["to"])
        return _normalize(market, normalize_market_chart, raw)
