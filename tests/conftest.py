import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest
from hexbytes import HexBytes

from cfd_sync.events import SIGNATURES, EventKind, address_topic
from cfd_sync.utils import EMPTY_ACCOUNT, STATUS, _json_dumps, _to_checksum, _to_hex, market_id_to_bytes

FACTORY = "0x" + "fa" * 20
REGISTRY = "0x" + "7e" * 20
FEEDS = "0x" + "fe" * 20

BUYER = "0x" + "b1" * 20
SELLER = "0x" + "5e" * 20
PARTY = BUYER
CFD_A = "0x" + "a1" * 20
CFD_B = "0x" + "b2" * 20
CFD_C = "0x" + "c3" * 20

MARKET = "Poloniex_ETH_USD"
OTHER_MARKET = "Binance_BTC_USD"

E18 = 10 ** 18

TOPICS = {kind: topic for topic, kind in SIGNATURES.items()}


def make_config(**overrides: Any) -> Dict[str, Any]:
    cfg = {
        "rpc_http": "http://localhost:8545",
        "cfd_factory_address": FACTORY,
        "cfd_registry_address": REGISTRY,
        "price_feeds_address": FEEDS,
        "deployment_block": 100,
        "decimals": 18,
        "push_interval": 0.01,
    }
    cfg.update(overrides)
    return cfg


def make_log(
    kind_or_topic: Any,
    *topics: str,
    data: str = "0x",
    block: int = 101,
    address: str = REGISTRY,
    log_index: int = 0,
) -> Dict[str, Any]:
    topic0 = TOPICS[kind_or_topic] if isinstance(kind_or_topic, EventKind) else kind_or_topic
    return {
        "address": address,
        "topics": [topic0, *topics],
        "data": data,
        "blockNumber": block,
        "logIndex": log_index,
        "transactionHash": "0x" + f"{block:064x}",
    }


def market_hash(market: str) -> str:
    return _to_hex(market_id_to_bytes(market))


def factory_new_log(market: str, cfd: str, block: int = 101, creator: str = BUYER) -> Dict[str, Any]:
    return make_log(
        EventKind.FACTORY_NEW,
        market_hash(market),
        address_topic(creator),
        data=address_topic(cfd),
        block=block,
        address=FACTORY,
    )


def party_log(cfd: str, party: str, block: int = 101) -> Dict[str, Any]:
    return make_log(EventKind.REGISTRY_PARTY, address_topic(cfd), address_topic(party), block=block)


def registry_new_log(cfd: str, block: int = 101) -> Dict[str, Any]:
    return make_log(EventKind.REGISTRY_NEW, address_topic(cfd), block=block)


def sale_log(cfd: str, block: int = 101) -> Dict[str, Any]:
    return make_log(EventKind.REGISTRY_SALE, address_topic(cfd), block=block)


def market_added_log(
    market: str, block: int = 101, kind: EventKind = EventKind.INTERNAL_MARKET_ADDED, address: str = FEEDS
) -> Dict[str, Any]:
    return make_log(kind, market_hash(market), data="0x" + "00" * 64, block=block, address=address)


def push_log(market: str, value: int, timestamp: int, block: int = 101) -> Dict[str, Any]:
    data = "0x" + f"{timestamp:064x}" + f"{value:064x}"
    return make_log(EventKind.INTERNAL_PUSH, market_hash(market), data=data, block=block, address=FEEDS)


def cfd_state(
    buyer: str = BUYER,
    seller: str = SELLER,
    market: str = MARKET,
    strike: int = 1000 * E18,
    notional: int = 100000 * E18,
    buyer_deposit: int = 20000 * E18,
    seller_deposit: int = 20000 * E18,
    status: int = STATUS["INITIATED"],
    buyer_selling: bool = False,
    seller_selling: bool = False,
    buyer_sale_strike: int = 0,
    seller_sale_strike: int = 0,
    closed: bool = False,
    initiated: bool = True,
) -> Dict[str, Any]:
    return {
        "getCfdAttributes": [
            _to_checksum(buyer),
            _to_checksum(seller),
            bytes(market_id_to_bytes(market)),
            strike,
            notional,
            buyer_selling,
            seller_selling,
            status,
        ],
        "getCfdAttributes2": [
            notional,
            notional,
            buyer_deposit,
            seller_deposit,
            buyer_sale_strike,
            seller_sale_strike,
            strike,
            strike,
        ],
        "getCfdAttributes3": [False, EMPTY_ACCOUNT],
        "closed": closed,
        "initiated": initiated,
    }


class FakeLedger:
    """In-memory stand-in for cfd_sync.ledger.Ledger."""

    def __init__(self, logs: Optional[List[Dict[str, Any]]] = None, head: int = 1000, hold_receipts: bool = False):
        self.logs = list(logs or [])
        self.head = head
        self.contracts: Dict[str, Dict[str, Any]] = {}
        self.market_names: Dict[str, str] = {market_hash(MARKET): MARKET, market_hash(OTHER_MARKET): OTHER_MARKET}
        self.prices: Dict[str, int] = {}
        self.active: Dict[str, bool] = {}
        self.delays: Dict[str, float] = {}
        self.scan_error: Optional[Exception] = None
        self.call_errors: Dict[str, Exception] = {}

        self.calls: List[tuple] = []
        self.get_logs_calls: List[tuple] = []

        # write side
        self.nonce = 0
        self.hold_receipts = hold_receipts
        self.receipt_status: Any = 1
        self.nonce_error: Optional[Exception] = None
        self.send_error: Optional[Exception] = None
        self.built: List[Dict[str, Any]] = []
        self.sent: List[Dict[str, Any]] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self._gates: List[asyncio.Event] = []

    def add_contract(self, address: str, state: Dict[str, Any]) -> None:
        self.contracts[address.lower()] = state

    async def block_number(self) -> int:
        return self.head

    async def get_logs(self, address, from_block, to_block, topics=None):
        self.get_logs_calls.append((address, from_block, to_block, topics))
        await asyncio.sleep(0)
        if self.scan_error is not None:
            raise self.scan_error
        return [dict(log) for log in self.logs if from_block <= log["blockNumber"] <= to_block]

    async def call(self, address, method, *args):
        self.calls.append((address, method, args))
        await asyncio.sleep(self.delays.get(address.lower(), 0))
        if address.lower() in self.call_errors:
            raise self.call_errors[address.lower()]
        if method == "marketNames":
            return self.market_names.get(_to_hex(args[0]), "")
        if method == "read":
            return self.prices[_to_hex(args[0])]
        if method == "isMarketActive":
            return self.active.get(_to_hex(args[0]), False)
        return self.contracts[address.lower()][method]

    def method_calls(self, method: str) -> List[tuple]:
        return [call for call in self.calls if call[1] == method]

    async def get_transaction_count(self, account):
        await asyncio.sleep(0)
        if self.nonce_error is not None:
            raise self.nonce_error
        return self.nonce

    async def build_transaction(self, address, method, args, tx_params):
        tx = {"to": address, "method": method, "args": list(args)}
        tx.update(tx_params)
        self.built.append(tx)
        return tx

    async def send_raw_transaction(self, raw):
        await asyncio.sleep(0)
        if self.send_error is not None:
            raise self.send_error
        tx = json.loads(raw.decode())
        self.sent.append(tx)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        return HexBytes("0x" + f"{len(self.sent):064x}")

    async def wait_for_receipt(self, tx_hash):
        if self.hold_receipts:
            gate = asyncio.Event()
            self._gates.append(gate)
            await gate.wait()
        self.in_flight -= 1
        self.nonce += 1
        return {"status": self.receipt_status, "transactionHash": tx_hash, "blockNumber": self.head}

    def release(self) -> None:
        for gate in self._gates:
            if not gate.is_set():
                gate.set()
                return
        raise AssertionError("no submission is waiting for a receipt")


class FakeSigner:
    address = _to_checksum("0x" + "d0" * 20)

    def __init__(self, fail_on: Optional[set] = None):
        self.fail_on = fail_on or set()
        self.signed = 0

    def sign(self, tx: Dict[str, Any]) -> bytes:
        index = self.signed
        self.signed += 1
        if index in self.fail_on:
            raise RuntimeError("hardware wallet disconnected")
        return _json_dumps(tx).encode()


async def settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def config() -> Dict[str, Any]:
    return make_config()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()
