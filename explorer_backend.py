"""
Mintscan Explorer API - Flask Backend
Read-only gateway that reshapes upstream chain, explorer and market data
into a stable JSON contract for the explorer UI
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

from flask import Flask, current_app, jsonify, request
from flask_cors import CORS
from flasgger import Swagger

from aggregator import AggregationGateway
from config import config as default_config
from database import ExplorerDatabase
from errors import AggregationError
from upstream_client import UpstreamClients, build_clients

# Configure logging
logging.basicConfig(
    level=getattr(logging, default_config.LOG_LEVEL),
    format=default_config.LOG_FORMAT,
)
logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "No route is found matching the URL"


# ==================== SWAGGER CONFIGURATION ====================

swagger_config = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: True,
            "model_filter": lambda tag: True,
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/api/docs",
}

swagger_template = {
    "info": {
        "title": "Mintscan Explorer API",
        "description": "Read-only API for accounts, validators, transactions, blocks, assets and market data",
        "version": "1.0.0",
    },
    "basePath": "/",
    "schemes": ["https", "http"],
    "tags": [
        {"name": "Health", "description": "Health check endpoints"},
        {"name": "Accounts", "description": "Account/address endpoints"},
        {"name": "Validators", "description": "Validator endpoints"},
        {"name": "Transactions", "description": "Transaction endpoints"},
        {"name": "Blocks", "description": "Block data endpoints"},
        {"name": "Assets", "description": "Token and asset endpoints"},
        {"name": "DEX", "description": "Order and fee endpoints"},
        {"name": "Market", "description": "Market data endpoints"},
        {"name": "Status", "description": "Chain status endpoints"},
    ],
}


def _gateway() -> AggregationGateway:
    return current_app.extensions["gateway"]


def _params(**path_params: Any) -> Dict[str, Any]:
    """Merge query string and path parameters; path wins"""
    params: Dict[str, Any] = request.args.to_dict()
    params.update(path_params)
    return params


# ==================== APP FACTORY ====================


def create_app(
    cfg=None,
    clients: Optional[UpstreamClients] = None,
    db: Optional[ExplorerDatabase] = None,
) -> Flask:
    """
    Build the Flask app with its process-wide handles

    Upstream clients and the database handle are created once here and
    shared read-only by every request.
    """
    cfg = cfg or default_config
    cfg.validate()

    if db is None:
        db = ExplorerDatabase(cfg.DB_PATH)
        db.ping()
    if clients is None:
        clients = build_clients(cfg)

    app = Flask(__name__)
    app.config["DEBUG"] = cfg.DEBUG
    CORS(app, origins=cfg.CORS_ORIGINS)
    Swagger(app, config=swagger_config, template=swagger_template)

    app.extensions["gateway"] = AggregationGateway.from_config(cfg, clients)
    app.extensions["clients"] = clients
    app.extensions["db"] = db

    _register_error_handlers(app)
    _register_routes(app)
    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(AggregationError)
    def handle_aggregation_error(error: AggregationError):
        if error.is_client_error:
            logger.info(f"Rejected {request.method} {request.path}: {error.message}")
        else:
            logger.error(f"Upstream failure on {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(404)
    def handle_not_found(error):
        return NOT_FOUND_MESSAGE, 404


def _register_routes(app: Flask) -> None:
    # ==================== ACCOUNT ENDPOINTS ====================

    @app.route("/v1/account/<address>", methods=["GET"])
    def get_account(address):
        """
        Get account details
        ---
        tags:
          - Accounts
        parameters:
          - name: address
            in: path
            type: string
            required: true
            description: Account address (42 characters)
        responses:
          200:
            description: Account details
            schema:
              type: object
              properties:
                address:
                  type: string
                account_number:
                  type: integer
                sequence:
                  type: integer
                public_key:
                  type: array
                  items:
                    type: integer
                balances:
                  type: array
                  items:
                    type: object
                    properties:
                      symbol:
                        type: string
                      free:
                        type: string
                      locked:
                        type: string
                      frozen:
                        type: string
          400:
            description: Missing or malformed address
          502:
            description: Upstream unreachable or returned an unexpected payload
        """
        return jsonify(_gateway().get_account(_params(address=address)))

    @app.route("/v1/account/txs/<address>", methods=["GET"])
    def get_account_txs(address):
        """
        Get transactions involving an account
        ---
        tags:
          - Accounts
        parameters:
          - name: address
            in: path
            type: string
            required: true
            description: Account address (42 characters)
          - name: page
            in: query
            type: integer
            default: 1
          - name: rows
            in: query
            type: integer
            default: 10
            description: Rows per page (1-50)
        responses:
          200:
            description: Account transactions
            schema:
              type: object
              properties:
                txNums:
                  type: integer
                  description: Total transactions for the account
                txArray:
                  type: array
                  items:
                    type: object
                    properties:
                      blockHeight:
                        type: integer
                      txHash:
                        type: string
                      txType:
                        type: string
                      fromAddr:
                        type: string
                      toAddr:
                        type: string
                        description: Empty string when the tx has no recipient
                      message:
                        type: object
                        description: Decoded message data, present for non-transfer txs only
          400:
            description: Invalid address or rows out of range
          502:
            description: Upstream failure
        """
        return jsonify(_gateway().get_account_txs(_params(address=address)))

    # ==================== VALIDATOR ENDPOINTS ====================

    @app.route("/v1/validators", methods=["GET"])
    def get_validators():
        """
        Get validators on the active chain
        ---
        tags:
          - Validators
        responses:
          200:
            description: Validators in upstream order, indexed from 0
            schema:
              type: array
              items:
                type: object
                properties:
                  id:
                    type: integer
                  moniker:
                    type: string
                  operator_address:
                    type: string
                  voting_power:
                    type: integer
                  commission_rate:
                    type: string
                  unbonding_time:
                    type: string
                  timestamp:
                    type: string
                    description: Time the record was observed by this API
          502:
            description: Upstream failure
        """
        return jsonify(_gateway().get_validators(_params()))

    @app.route("/v1/validator/<address>", methods=["GET"])
    def get_validator(address):
        """
        Get a single validator
        ---
        tags:
          - Validators
        parameters:
          - name: address
            in: path
            type: string
            required: true
        responses:
          200:
            description: Validator record (id is always 0)
          502:
            description: Upstream failure
        """
        return jsonify(_gateway().get_validator(_params(address=address)))

    # ==================== ASSET ENDPOINTS ====================

    @app.route("/v1/tokens", methods=["GET"])
    def get_tokens():
        """
        Get tokens issued on the chain
        ---
        tags:
          - Assets
        parameters:
          - name: limit
            in: query
            type: integer
            default: 100
            description: Maximum 1000
          - name: offset
            in: query
            type: integer
            default: 0
        responses:
          200:
            description: Token list
          400:
            description: Limit over maximum
        """
        return jsonify(_gateway().get_tokens(_params()))

    @app.route("/v1/asset", methods=["GET"])
    def get_asset():
        """
        Get an asset by name
        ---
        tags:
          - Assets
        parameters:
          - name: asset
            in: query
            type: string
            required: true
        responses:
          200:
            description: Asset details
        """
        return jsonify(_gateway().get_asset(_params()))

    @app.route("/v1/assets", methods=["GET"])
    def get_assets():
        """
        Get assets
        ---
        tags:
          - Assets
        parameters:
          - name: page
            in: query
            type: integer
            default: 1
          - name: rows
            in: query
            type: integer
            default: 20
        responses:
          200:
            description: Asset page
        """
        return jsonify(_gateway().get_assets(_params()))

    @app.route("/v1/assets/txs", methods=["GET"])
    def get_asset_txs():
        """
        Get transactions of an asset
        ---
        tags:
          - Assets
        parameters:
          - name: txAsset
            in: query
            type: string
            required: true
          - name: page
            in: query
            type: integer
            default: 1
          - name: rows
            in: query
            type: integer
            default: 20
        responses:
          200:
            description: Asset transactions
        """
        return jsonify(_gateway().get_asset_txs(_params()))

    @app.route("/v1/asset-holders", methods=["GET"])
    def get_asset_holders():
        """
        Get holders of an asset
        ---
        tags:
          - Assets
        parameters:
          - name: asset
            in: query
            type: string
            required: true
          - name: page
            in: query
            type: integer
            default: 1
          - name: rows
            in: query
            type: integer
            default: 20
        responses:
          200:
            description: Asset holders
        """
        return jsonify(_gateway().get_asset_holders(_params()))

    # ==================== DEX ENDPOINTS ====================

    @app.route("/v1/orders/<order_id>", methods=["GET"])
    def get_order(order_id):
        """
        Get an order by id
        ---
        tags:
          - DEX
        parameters:
          - name: order_id
            in: path
            type: string
            required: true
        responses:
          200:
            description: Order details
        """
        return jsonify(_gateway().get_order(_params(id=order_id)))

    @app.route("/v1/fees", methods=["GET"])
    def get_fees():
        """
        Get fees for each transaction message type
        ---
        tags:
          - DEX
        responses:
          200:
            description: Fee schedule
        """
        return jsonify(_gateway().get_fees(_params()))

    # ==================== STATUS ENDPOINTS ====================

    @app.route("/v1/status", methods=["GET"])
    def get_status():
        """
        Get current chain status
        ---
        tags:
          - Status
        responses:
          200:
            description: Chain status aggregate
            schema:
              type: object
              properties:
                chain_id:
                  type: string
                block_time:
                  type: number
                  description: Seconds between the two latest blocks
                latest_block_height:
                  type: integer
                total_validator_num:
                  type: integer
                timestamp:
                  type: string
                  description: Latest block time reported by the node
          502:
            description: Upstream failure (fail-closed policy)
        """
        return jsonify(_gateway().get_status(_params()))

    # ==================== TRANSACTION ENDPOINTS ====================

    @app.route("/v1/txs", methods=["GET"])
    def get_txs():
        """
        Get transactions
        ---
        tags:
          - Transactions
        parameters:
          - name: before
            in: query
            type: integer
            default: 0
          - name: after
            in: query
            type: integer
            default: 0
          - name: limit
            in: query
            type: integer
            default: 20
            description: Maximum 100
        responses:
          200:
            description: Transaction page
            schema:
              type: object
              properties:
                txs:
                  type: array
                  items:
                    type: object
                total:
                  type: integer
        """
        return jsonify(_gateway().get_txs(_params()))

    @app.route("/v1/txs", methods=["POST"])
    def get_txs_by_type():
        """
        Get transactions by type within a time range
        ---
        tags:
          - Transactions
        parameters:
          - name: body
            in: body
            required: true
            schema:
              type: object
              required:
                - type
                - startTime
                - endTime
              properties:
                type:
                  type: string
                startTime:
                  type: integer
                  description: Unix seconds
                endTime:
                  type: integer
                  description: Unix seconds
                before:
                  type: integer
                after:
                  type: integer
                limit:
                  type: integer
        responses:
          200:
            description: Transaction page
          400:
            description: Missing or malformed filter
        """
        params = _params()
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            params.update(body)
        return jsonify(_gateway().get_txs_by_type(params))

    @app.route("/v1/txs/<tx_hash>", methods=["GET"])
    def get_tx_by_hash(tx_hash):
        """
        Get a transaction by hash
        ---
        tags:
          - Transactions
        parameters:
          - name: tx_hash
            in: path
            type: string
            required: true
        responses:
          200:
            description: Transaction details
        """
        return jsonify(_gateway().get_tx_by_hash(_params(hash=tx_hash)))

    @app.route("/v1/blocks", methods=["GET"])
    def get_blocks():
        """
        Get blocks
        ---
        tags:
          - Blocks
        parameters:
          - name: before
            in: query
            type: integer
          - name: after
            in: query
            type: integer
          - name: limit
            in: query
            type: integer
            default: 20
        responses:
          200:
            description: Blocks in upstream order
        """
        return jsonify(_gateway().get_blocks(_params()))

    # ==================== MARKET ENDPOINTS ====================

    @app.route("/v1/market", methods=["GET"])
    def get_market():
        """
        Get current market data for the chain's coin
        ---
        tags:
          - Market
        parameters:
          - name: id
            in: query
            type: string
            description: Market coin id (defaults to the configured coin)
        responses:
          200:
            description: Market snapshot in USD
        """
        return jsonify(_gateway().get_market(_params()))

    @app.route("/v1/market/chart", methods=["GET"])
    def get_market_chart():
        """
        Get market chart data
        ---
        tags:
          - Market
        parameters:
          - name: id
            in: query
            type: string
          - name: from
            in: query
            type: integer
            description: Unix seconds (defaults to 24 hours before 'to')
          - name: to
            in: query
            type: integer
            description: Unix seconds (defaults to now)
        responses:
          200:
            description: Price, market cap and volume series
        """
        return jsonify(_gateway().get_market_chart(_params()))

    # ==================== HEALTH CHECK ====================

    @app.route("/health", methods=["GET"])
    def health_check():
        """
        Health check
        ---
        tags:
          - Health
        responses:
          200:
            description: Health status
            schema:
              type: object
              properties:
                status:
                  type: string
                  description: Overall health status (healthy/degraded)
                database:
                  type: boolean
                node:
                  type: object
                  properties:
                    reachable:
                      type: boolean
                    rpc:
                      type: string
                    latest_block_height:
                      type: integer
                api:
                  type: object
                  properties:
                    reachable:
                      type: boolean
                    url:
                      type: string
                    last_block_height:
                      type: integer
                timestamp:
                  type: number
        """
        clients: UpstreamClients = current_app.extensions["clients"]
        node_height = _probe_height("RPC", clients.rpc.latest_block_height)
        api_height = _probe_height("data API", clients.api.last_block_height)

        db_status = current_app.extensions["db"].is_healthy()
        healthy = node_height is not None and api_height is not None and db_status
        return jsonify({
            "status": "healthy" if healthy else "degraded",
            "database": db_status,
            "node": {
                "reachable": node_height is not None,
                "rpc": clients.rpc.base_url,
                "latest_block_height": node_height,
            },
            "api": {
                "reachable": api_height is not None,
                "url": clients.api.base_url,
                "last_block_height": api_height,
            },
            "timestamp": time.time(),
        }), 200


def _probe_height(name: str, fetch_height) -> Optional[int]:
    try:
        return fetch_height()
    except AggregationError as e:
        logger.warning(f"{name} health degraded: {e}")
        return None


if __name__ == "__main__":
    app = create_app()

    logger.info("Starting Mintscan Explorer API")
    logger.info(f"Node RPC URL: {default_config.NODE_RPC_URL}")
    logger.info(f"Node API URL: {default_config.NODE_API_URL}")
    logger.info(f"Status failure policy: {default_config.STATUS_FAILURE_POLICY}")
    logger.info(f"Port: {default_config.EXPLORER_PORT}")

    app.run(
        host=default_config.EXPLORER_HOST,
        port=default_config.EXPLORER_PORT,
        debug=default_config.DEBUG,
        threaded=True,
    )
