"""
Upstream clients for the Mintscan explorer API gateway
One thin request/decode client per upstream service
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from errors import UpstreamDecodeError, UpstreamUnreachableError

logger = logging.getLogger(__name__)


# ==================== BASE CLIENT ====================


class UpstreamClient:
    """
    Base request/decode client bound to one upstream base URL

    Every call is a single attempt. Transport failures and non-2xx statuses
    raise UpstreamUnreachableError, bodies that are not JSON or have the
    wrong top-level shape raise UpstreamDecodeError.
    """

    name = "upstream"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize upstream client

        Args:
            base_url: Base URL every endpoint is resolved against
            timeout: Connect/read timeout in seconds
            session: Optional pre-built session (tests inject stubs here)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

        self.session = session or requests.Session()
        adapter = HTTPAdapter(max_retries=Retry(total=0, read=False, redirect=False))
        self.session.mount("http://", adapter)
        self.session.mount("https://", adapter)

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _get(self, endpoint: str, params: Optional[Dict] = None) -> Any:
        """Make GET request and decode the JSON body"""
        url = self._url(endpoint)
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status_code = getattr(e.response, "status_code", None)
            logger.error(f"{self.name} returned an error status: {url} - {e}")
            raise UpstreamUnreachableError(
                f"{self.name} request failed: {e}",
                upstream=self.name,
                url=url,
                status_code=status_code,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Request failed: {url} - {e}")
            raise UpstreamUnreachableError(
                f"{self.name} is unreachable: {e}", upstream=self.name, url=url
            ) from e

        try:
            return response.json()
        except ValueError as e:
            logger.error(f"Failed to decode {self.name} response: {url} - {e}")
            raise UpstreamDecodeError(
                f"{self.name} returned a non-JSON body", upstream=self.name, url=url
            ) from e

    def _get_object(self, endpoint: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        data = self._get(endpoint, params)
        if not isinstance(data, dict):
            raise self._shape_error(endpoint, "object", data)
        return data

    def _get_list(self, endpoint: str, params: Optional[Dict] = None) -> List[Any]:
        data = self._get(endpoint, params)
        if not isinstance(data, list):
            raise self._shape_error(endpoint, "list", data)
        return data

    def _shape_error(self, endpoint: str, expected: str, data: Any) -> UpstreamDecodeError:
        url = self._url(endpoint)
        logger.error(
            f"Unexpected {self.name} payload: {url} - expected {expected}, "
            f"got {type(data).__name__}"
        )
        return UpstreamDecodeError(
            f"{self.name} returned an unexpected payload for {endpoint}",
            upstream=self.name,
            url=url,
        )


# ==================== TENDERMINT RPC ====================


class ConsensusRPCClient(UpstreamClient):
    """Tendermint consensus RPC (status, blocks, validator sets)"""

    name = "consensus-rpc"

    def _rpc_result(self, endpoint: str, params: Optional[Dict] = None) -> Dict[str, Any]:
        data = self._get_object(endpoint, params)
        if data.get("error"):
            logger.error(f"RPC error from {self._url(endpoint)}: {data['error']}")
            raise UpstreamDecodeError(
                f"{self.name} returned an RPC error for {endpoint}",
                upstream=self.name,
                url=self._url(endpoint),
            )
        result = data.get("result", data)
        if not isinstance(result, dict):
            raise self._shape_error(endpoint, "object", result)
        return result

    def status(self) -> Dict[str, Any]:
        """Get node status"""
        return self._rpc_result("status")

    def latest_block_height(self) -> int:
        """Latest block height reported by the node status"""
        status = self.status()
        try:
            return int(status["sync_info"]["latest_block_height"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamDecodeError(
                f"{self.name} status has no usable latest_block_height",
                upstream=self.name,
                url=self._url("status"),
            ) from e

    def block(self, height: int) -> Dict[str, Any]:
        """Get block at height"""
        return self._rpc_result("block", {"height": str(height)})

    def validator_set(self, height: int) -> Dict[str, Any]:
        """Get validator set at height"""
        return self._rpc_result("validators", {"height": str(height)})


# ==================== REST DATA API ====================


class DataAPIClient(UpstreamClient):
    """Generic REST data API (tokens, validators, accounts, txs, blocks)"""

    name = "data-api"

    def tokens(self, limit: int, offset: int) -> List[Dict[str, Any]]:
        return self._get_list("tokens", {"limit": limit, "offset": offset})

    def validators(self) -> List[Dict[str, Any]]:
        return self._get_list("stake/validators")

    def validator(self, address: str) -> Dict[str, Any]:
        return self._get_object(f"stake/validators/{quote(address, safe='')}")

    def account(self, address: str) -> Dict[str, Any]:
        return self._get_object(f"accounts/{quote(address, safe='')}")

    def txs(self, before: int, after: int, limit: int) -> Dict[str, Any]:
        """Paginated transaction list, shaped {"data": [...], "total": n}"""
        return self._tx_page(
            "txs", {"before": before, "after": after, "limit": limit}
        )

    def tx_by_hash(self, tx_hash: str) -> Dict[str, Any]:
        return self._get_object("tx", {"hash": tx_hash})

    def txs_by_type_and_time(
        self,
        tx_type: str,
        start_time: int,
        end_time: int,
        before: int,
        after: int,
        limit: int,
    ) -> Dict[str, Any]:
        return self._tx_page(
            "txs",
            {
                "type": tx_type,
                "starttime": start_time,
                "endtime": end_time,
                "before": before,
                "after": after,
                "limit": limit,
            },
        )

    def blocks(self, before: int, after: int, limit: int) -> List[Dict[str, Any]]:
        return self._get_list(
            "blocks", {"before": before, "after": after, "limit": limit}
        )

    def last_block_height(self) -> int:
        block = self._get_object("blocks/latest")
        try:
            return int(block["height"])
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamDecodeError(
                f"{self.name} latest block has no usable height",
                upstream=self.name,
                url=self._url("blocks/latest"),
            ) from e

    def _tx_page(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        page = self._get_object(endpoint, params)
        if not isinstance(page.get("data", []), list):
            raise self._shape_error(endpoint, "list under 'data'", page.get("data"))
        return page


# ==================== ACCELERATED API ====================


class AcceleratedClient(UpstreamClient):
    """Accelerated node API (orders, fee schedule)"""

    name = "accelerated-api"

    def order(self, order_id: str) -> Dict[str, Any]:
        return self._get_object(f"orders/{quote(order_id, safe='')}")

    def tx_msg_fees(self) -> List[Dict[str, Any]]:
        """Fees for each transaction message type"""
        return self._get_list("fees")


# ==================== EXPLORER API ====================


class ExplorerAPIClient(UpstreamClient):
    """Block/asset explorer API"""

    name = "explorer-api"

    def asset(self, asset_name: str) -> Dict[str, Any]:
        return self._get_object("asset", {"asset": asset_name})

    def assets(self, page: int, rows: int) -> Dict[str, Any]:
        return self._get_object("assets", {"page": page, "rows": rows})

    def asset_holders(self, asset: str, page: int, rows: int) -> Dict[str, Any]:
        return self._get_object(
            "asset-holders", {"asset": asset, "page": page, "rows": rows}
        )

    def asset_txs(self, tx_asset: str, page: int, rows: int) -> Dict[str, Any]:
        return self._get_object(
            "txs", {"txAsset": tx_asset, "page": page, "rows": rows}
        )

    def account_txs(self, address: str, page: int, rows: int) -> Dict[str, Any]:
        return self._get_object(
            "account/txs", {"address": address, "page": page, "rows": rows}
        )


# ==================== MARKET DATA ====================


class MarketDataClient(UpstreamClient):
    """CoinGecko-compatible market data API"""

    name = "market-api"

    def coin_market_data(self, coin_id: str) -> Dict[str, Any]:
        return self._get_object(
            f"coins/{quote(coin_id, safe='')}",
            {
                "localization": "false",
                "tickers": "false",
                "community_data": "false",
                "developer_data": "false",
                "sparkline": "false",
            },
        )

    def coin_market_chart(self, coin_id: str, from_ts: int, to_ts: int) -> Dict[str, Any]:
        return self._get_object(
            f"coins/{quote(coin_id, safe='')}/market_chart/range",
            {"id": coin_id, "vs_currency": "usd", "from": from_ts, "to": to_ts},
        )


# ==================== CLIENT BUNDLE ====================


@dataclass(frozen=True)
class UpstreamClients:
    """Process-wide upstream handles, built once at startup"""

    rpc: ConsensusRPCClient
    api: DataAPIClient
    accelerated: AcceleratedClient
    explorer: ExplorerAPIClient
    market: MarketDataClient


def build_clients(cfg) -> UpstreamClients:
    """Construct every upstream client from configuration"""
    clients = UpstreamClients(
        rpc=ConsensusRPCClient(cfg.NODE_RPC_URL, cfg.RPC_TIMEOUT),
        api=DataAPIClient(cfg.NODE_API_URL, cfg.API_TIMEOUT),
        accelerated=AcceleratedClient(cfg.ACCELERATED_NODE_URL, cfg.ACCELERATED_TIMEOUT),
        explorer=ExplorerAPIClient(cfg.EXPLORER_API_URL, cfg.EXPLORER_API_TIMEOUT),
        market=MarketDataClient(cfg.COINGECKO_API_URL, cfg.MARKET_TIMEOUT),
    )
    logger.info(
        f"Upstream clients ready: rpc={cfg.NODE_RPC_URL} api={cfg.NODE_API_URL} "
        f"accelerated={cfg.ACCELERATED_NODE_URL} explorer={cfg.EXPLORER_API_URL} "
        f"market={cfg.COINGECKO_API_URL}"
    )
    return clients
