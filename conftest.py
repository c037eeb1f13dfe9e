"""
Shared test doubles for upstream HTTP traffic
"""

from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest
import requests

from config import TestConfig
from upstream_client import (
    AcceleratedClient,
    ConsensusRPCClient,
    DataAPIClient,
    ExplorerAPIClient,
    MarketDataClient,
    UpstreamClients,
)


class MockResponse:
    """Simple mock for HTTP responses"""

    def __init__(self, payload: Any, status_code: int = 200, invalid_json: bool = False):
        self._payload = payload
        self.status_code = status_code
        self.invalid_json = invalid_json

    def json(self):
        if self.invalid_json:
            raise ValueError("Expecting value: line 1 column 1 (char 0)")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")


Route = Union[Any, MockResponse, Exception, Callable[[Optional[Dict]], Any]]


class StubSession:
    """
    Stand-in for requests.Session that answers by endpoint path

    Routes map an endpoint (relative to the client base URL) to a payload,
    a MockResponse, an exception to raise, or a callable taking the query
    params. Every call is recorded.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes = routes or {}
        self.calls: List[Tuple[str, Optional[Dict]]] = []
        self.base_url = ""

    def mount(self, prefix, adapter):
        pass

    def get(self, url, params=None, timeout=None):
        self.calls.append((url, params))
        endpoint = url[len(self.base_url):].lstrip("/")
        if endpoint not in self.routes:
            return MockResponse({"error": "not found"}, status_code=404)

        route = self.routes[endpoint]
        if isinstance(route, Exception):
            raise route
        if callable(route):
            route = route(params)
        if isinstance(route, MockResponse):
            return route
        return MockResponse(route)


def _client(client_cls, base_url: str, timeout: int, routes):
    session = StubSession(routes)
    client = client_cls(base_url, timeout, session=session)
    session.base_url = client.base_url
    return client, session


def make_clients(rpc=None, api=None, accelerated=None, explorer=None, market=None):
    """Build an UpstreamClients bundle backed by stub sessions"""
    cfg = TestConfig
    rpc_client, rpc_session = _client(ConsensusRPCClient, cfg.NODE_RPC_URL, cfg.RPC_TIMEOUT, rpc)
    api_client, api_session = _client(DataAPIClient, cfg.NODE_API_URL, cfg.API_TIMEOUT, api)
    acc_client, acc_session = _client(
        AcceleratedClient, cfg.ACCELERATED_NODE_URL, cfg.ACCELERATED_TIMEOUT, accelerated
    )
    exp_client, exp_session = _client(
        ExplorerAPIClient, cfg.EXPLORER_API_URL, cfg.EXPLORER_API_TIMEOUT, explorer
    )
    mkt_client, mkt_session = _client(MarketDataClient, cfg.COINGECKO_API_URL, cfg.MARKET_TIMEOUT, market)

    clients = UpstreamClients(
        rpc=rpc_client,
        api=api_client,
        accelerated=acc_client,
        explorer=exp_client,
        market=mkt_client,
    )
    sessions = {
        "rpc": rpc_session,
        "api": api_session,
        "accelerated": acc_session,
        "explorer": exp_session,
        "market": mkt_session,
    }
    return clients, sessions


@pytest.fixture
def stub_clients():
    return make_clients


def rpc_envelope(result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "id": "", "result": result}


def rpc_status(height: int = 100, network: str = "Binance-Chain-Tigris") -> Dict[str, Any]:
    return rpc_envelope({
        "node_info": {"network": network, "moniker": "node-0"},
        "sync_info": {
            "latest_block_height": str(height),
            "latest_block_time": "2019-04-18T05:59:26.228734998Z",
        },
    })


def rpc_block(time_str: str) -> Dict[str, Any]:
    return rpc_envelope({"block": {"header": {"time": time_str}}})


def rpc_validators(count: int) -> Dict[str, Any]:
    return rpc_envelope({
        "block_height": "100",
        "validators": [{"address": f"VAL{i}", "voting_power": "1000"} for i in range(count)],
    })
