"""
Tests for canonical response normalization
"""

import json
from datetime import datetime, timezone

import pytest

from normalizer import (
    PayloadShapeError,
    decode_tx_message,
    format_time,
    normalize_account,
    normalize_account_txs,
    normalize_market_chart,
    normalize_status,
    normalize_tx_page,
    normalize_validator,
    normalize_validators,
    parse_timestamp,
    seconds_between,
)

OBSERVED_AT = datetime(2024, 1, 2, 3, 4, 5, 678901, tzinfo=timezone.utc)


def _validator(moniker: str, power: str = "1000") -> dict:
    return {
        "account_address": "bnb1account" + moniker,
        "operator_address": "bva1operator" + moniker,
        "consensus_address": "CONS" + moniker,
        "jailed": False,
        "status": 2,
        "tokens": "5000000000000",
        "power": power,
        "delegator_shares": "5000000000000.0000000000",
        "description": {"moniker": moniker, "website": "https://example.org"},
        "bond_height": "0",
        "bond_intra_tx_counter": 0,
        "unbonding_height": "0",
        "unbonding_time": "1970-01-01T00:00:00Z",
        "commission": {
            "rate": "0.050000000000000000",
            "max_rate": "0.200000000000000000",
            "max_change_rate": "0.010000000000000000",
            "update_time": "2019-04-18T05:59:26.228734998Z",
        },
    }


class TestTimestamps:
    def test_nanosecond_round_trip(self):
        parsed = parse_timestamp("2019-04-18T05:59:26.228734998Z")
        assert parsed.nanos == 228734998
        assert parsed.isoformat() == "2019-04-18T05:59:26.228734998Z"

    def test_offset_converted_to_utc(self):
        parsed = parse_timestamp("2019-04-18T14:59:26+09:00")
        assert parsed.isoformat() == "2019-04-18T05:59:26Z"

    def test_invalid(self):
        with pytest.raises(PayloadShapeError):
            parse_timestamp("yesterday")

    def test_zero_time_keeps_four_digit_year(self):
        assert format_time("0001-01-01T00:00:00Z") == "0001-01-01T00:00:00Z"
        assert parse_timestamp("0999-12-31T23:59:59.5Z").isoformat() == "0999-12-31T23:59:59.5Z"

    @pytest.mark.parametrize("value", ["2019-13-45T00:00:00Z", "0001-01-01T00:30:00+01:00"])
    def test_out_of_range(self, value):
        with pytest.raises(PayloadShapeError):
            parse_timestamp(value)

    @pytest.mark.parametrize(
        "later, earlier, expected",
        [
            ("2019-04-18T05:59:26.228734998Z", "2019-04-18T05:59:25.728734998Z", 0.5),
            ("2019-04-18T06:00:01Z", "2019-04-18T05:59:59Z", 2.0),
            ("2019-04-19T00:00:00.000000001Z", "2019-04-18T23:59:59.000000001Z", 1.0),
        ],
    )
    def test_seconds_between_is_exact(self, later, earlier, expected):
        assert seconds_between(parse_timestamp(later), parse_timestamp(earlier)) == expected


class TestValidatorNormalization:
    def test_flattens_nested_fields(self):
        result = normalize_validator(_validator("alpha"), 0, OBSERVED_AT)

        assert result["id"] == 0
        assert result["moniker"] == "alpha"
        assert result["voting_power"] == 1000
        assert result["status"] == "2"
        assert result["commission_rate"] == "0.050000000000000000"
        assert result["commission_max_rate"] == "0.200000000000000000"
        assert result["commission_max_change_rate"] == "0.010000000000000000"
        assert result["commission_update_time"] == "2019-04-18T05:59:26.228734998Z"
        assert result["unbonding_time"] == "1970-01-01T00:00:00Z"
        assert result["timestamp"] == "2024-01-02T03:04:05.678901Z"

    def test_cosmos_commission_rates_shape(self):
        raw = _validator("beta")
        raw["commission"] = {
            "commission_rates": {"rate": "0.1", "max_rate": "0.2", "max_change_rate": "0.01"},
            "update_time": "2020-01-01T00:00:00Z",
        }
        result = normalize_validator(raw, 0, OBSERVED_AT)
        assert result["commission_rate"] == "0.1"
        assert result["commission_update_time"] == "2020-01-01T00:00:00Z"

    def test_list_indices_follow_upstream_order(self):
        raws = [_validator(name) for name in ("c", "a", "b")]
        result = normalize_validators(raws, OBSERVED_AT)

        assert [v["id"] for v in result] == [0, 1, 2]
        assert [v["moniker"] for v in result] == ["c", "a", "b"]

    def test_idempotent_for_same_clock(self):
        raw = _validator("alpha")
        assert normalize_validator(raw, 0, OBSERVED_AT) == normalize_validator(raw, 0, OBSERVED_AT)

    def test_bad_time_field(self):
        raw = _validator("alpha")
        raw["unbonding_time"] = "not-a-time"
        with pytest.raises(PayloadShapeError):
            normalize_validator(raw, 0, OBSERVED_AT)

    def test_rejects_non_object(self):
        with pytest.raises(PayloadShapeError):
            normalize_validators([_validator("a"), "oops"], OBSERVED_AT)

    @pytest.mark.parametrize("field, value", [("description", "x"), ("commission", ["0.1"])])
    def test_nested_field_wrong_type(self, field, value):
        raw = _validator("alpha")
        raw[field] = value
        with pytest.raises(PayloadShapeError):
            normalize_validator(raw, 0, OBSERVED_AT)

    def test_null_commission_rates_use_defaults(self):
        raw = _validator("alpha")
        raw["commission"] = {"commission_rates": None}
        result = normalize_validator(raw, 0, OBSERVED_AT)

        assert result["commission_rate"] == "0"
        assert result["commission_max_rate"] == "0"
        assert result["commission_update_time"] == ""

    def test_never_set_times_render_as_zero_time(self):
        raw = _validator("alpha")
        raw["unbonding_time"] = "0001-01-01T00:00:00Z"
        assert normalize_validator(raw, 0, OBSERVED_AT)["unbonding_time"] == "0001-01-01T00:00:00Z"


class TestAccountNormalization:
    def test_defaults_and_idempotence(self):
        raw = {
            "address": "bnb1" + "x" * 38,
            "account_number": 29,
            "sequence": "3",
            "balances": [{"symbol": "BNB", "free": "1.5"}],
        }
        first = normalize_account(raw)
        assert first == normalize_account(raw)
        assert first["sequence"] == 3
        assert first["public_key"] == []
        assert first["balances"] == [
            {"symbol": "BNB", "free": "1.5", "locked": "0", "frozen": "0"}
        ]


class TestAccountTxNormalization:
    def _tx(self, tx_hash: str, tx_type: str, data: str = "", to_addr=None) -> dict:
        tx = {
            "blockHeight": 1000,
            "txHash": tx_hash,
            "code": 0,
            "txType": tx_type,
            "txAsset": "BNB",
            "value": "1.00000000",
            "txFee": "0.00037500",
            "txAge": 60,
            "fromAddr": "bnb1from",
            "log": "Msg 0: ",
            "confirmBlocks": 0,
            "memo": "",
            "source": 0,
            "timeStamp": 1555567166228,
            "data": data,
        }
        if to_addr is not None:
            tx["toAddr"] = to_addr
        return tx

    def test_transfer_has_no_message_and_default_to_address(self):
        result = normalize_account_txs({"txNums": 1, "txArray": [self._tx("A", "TRANSFER")]})

        entry = result["txArray"][0]
        assert "message" not in entry
        assert entry["toAddr"] == ""
        assert entry["timestamp"] == 1555567166228
        assert result["txNums"] == 1

    def test_non_transfer_message_decoded(self):
        order = {"orderData": {"symbol": "BNB_BTCB-1DE", "side": "BUY", "orderId": "X-1"}}
        result = normalize_account_txs(
            {"txNums": 1, "txArray": [self._tx("B", "NEW_ORDER", json.dumps(order), "bnb1to")]}
        )

        entry = result["txArray"][0]
        assert entry["message"] == order
        assert entry["toAddr"] == "bnb1to"

    def test_malformed_message_isolated_to_one_record(self):
        good = {"orderData": {"orderId": "X-2"}}
        result = normalize_account_txs({
            "txNums": 3,
            "txArray": [
                self._tx("A", "TRANSFER"),
                self._tx("B", "NEW_ORDER", "{not json"),
                self._tx("C", "CANCEL_ORDER", json.dumps(good)),
            ],
        })

        entries = result["txArray"]
        assert [e["txHash"] for e in entries] == ["A", "B", "C"]
        assert "message" not in entries[0]
        assert "message" not in entries[1]
        assert entries[2]["message"] == good

    def test_unhashable_tx_type_isolated_to_one_record(self):
        odd = self._tx("B", "NEW_ORDER", json.dumps({"a": 1}))
        odd["txType"] = ["NEW_ORDER"]
        result = normalize_account_txs({"txNums": 2, "txArray": [self._tx("A", "TRANSFER"), odd]})

        entries = result["txArray"]
        assert [e["txHash"] for e in entries] == ["A", "B"]
        assert entries[1]["txType"] == ["NEW_ORDER"]
        assert entries[1]["message"] == {"a": 1}

    def test_transfer_data_ignored(self):
        assert decode_tx_message("TRANSFER", '{"a": 1}') is None

    def test_message_must_be_object(self):
        with pytest.raises(ValueError):
            decode_tx_message("NEW_ORDER", "[1, 2]")

    def test_empty_upstream(self):
        assert normalize_account_txs({}) == {"txNums": 0, "txArray": []}


class TestStatusNormalization:
    STATUS = {
        "node_info": {"network": "Binance-Chain-Tigris"},
        "sync_info": {
            "latest_block_height": "12345",
            "latest_block_time": "2019-04-18T05:59:26.228734998Z",
        },
    }

    def _block(self, time_str: str) -> dict:
        return {"block": {"header": {"time": time_str}}}

    def test_combines_four_payloads(self):
        result = normalize_status(
            self.STATUS,
            {"validators": [{}, {}, {}]},
            self._block("2019-04-18T05:59:26.228734998Z"),
            self._block("2019-04-18T05:59:25.828734998Z"),
        )
        assert result == {
            "chain_id": "Binance-Chain-Tigris",
            "block_time": 0.4,
            "latest_block_height": 12345,
            "total_validator_num": 3,
            "timestamp": "2019-04-18T05:59:26.228734998Z",
        }

    def test_validator_total_preferred(self):
        result = normalize_status(self.STATUS, {"validators": [{}], "total": "11"}, None, None)
        assert result["total_validator_num"] == 11

    def test_missing_inputs_use_zero_values(self):
        assert normalize_status(None, None, None, None) == {
            "chain_id": "",
            "block_time": 0.0,
            "latest_block_height": 0,
            "total_validator_num": 0,
            "timestamp": "",
        }

    def test_malformed_status(self):
        with pytest.raises(PayloadShapeError):
            normalize_status({"node_info": {}}, None, None, None)


class TestListResources:
    def test_tx_page_preserves_order(self):
        page = {"data": [{"hash": "3"}, {"hash": "1"}, {"hash": "2"}], "total": 40}
        assert normalize_tx_page(page) == {
            "txs": [{"hash": "3"}, {"hash": "1"}, {"hash": "2"}],
            "total": 40,
        }

    def test_market_chart_points(self):
        result = normalize_market_chart({"prices": [[1600000000000, 23.4]]})
        assert result["prices"] == [{"timestamp": 1600000000000, "value": 23.4}]
        assert result["market_caps"] == []
