import json
from decimal import Decimal

import pytest
from hexbytes import HexBytes

from cfd_sync.utils import (
    _json_dumps,
    _normalize_log,
    _to_hex,
    is_valid_market_id,
    market_id_to_bytes,
    tx_failed,
)


@pytest.mark.parametrize("status", [1, "0x1", "0x01", True])
def test_success_statuses(status):
    assert tx_failed(status) is False


@pytest.mark.parametrize("status", [0, "0x0", False, None, "1"])
def test_failure_statuses(status):
    assert tx_failed(status) is True


@pytest.mark.parametrize("market", ["Poloniex_ETH_USD", "Kraken_XBT_EUR"])
def test_valid_market_ids(market):
    assert is_valid_market_id(market)


@pytest.mark.parametrize("market", ["ETH_USD", "Poloniex_ETH_USD_X", "Poloniex-ETH-USD", "Poloniex_ETH_US1", "", None])
def test_invalid_market_ids(market):
    assert not is_valid_market_id(market)


def test_market_id_is_keccak_of_name():
    assert len(market_id_to_bytes("Poloniex_ETH_USD")) == 32
    assert market_id_to_bytes("Poloniex_ETH_USD") != market_id_to_bytes("Poloniex_ETH_USDT")


def test_to_hex():
    assert _to_hex(b"\x01\xab") == "0x01ab"
    assert _to_hex("ABCD") == "0xabcd"
    assert _to_hex("0xAbCd") == "0xabcd"
    with pytest.raises(TypeError):
        _to_hex(12)


def test_json_dumps_keeps_decimals_exact():
    out = json.loads(_json_dumps({"price": Decimal("850.000"), "raw": HexBytes("0x01"), "tiny": Decimal("1E-30")}))
    assert out == {"price": "850", "raw": "0x01", "tiny": "0." + "0" * 29 + "1"}


def test_normalize_log_parses_rpc_fields():
    log = _normalize_log(
        {
            "address": "0x" + "ab" * 20,
            "topics": ["0x" + "01" * 32],
            "data": "0x",
            "blockNumber": "0x10",
            "logIndex": "3",
            "transactionHash": "0x" + "ff" * 32,
        }
    )
    assert log["blockNumber"] == 16
    assert log["logIndex"] == 3
    assert log["topics"] == [HexBytes("0x" + "01" * 32)]
    assert log["data"] == b""
    assert log["address"].lower() == "0x" + "ab" * 20
