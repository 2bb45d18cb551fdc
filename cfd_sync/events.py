"""Decoding of raw CFD registry, factory and price feeds logs.

Nodes do not reliably hand back event names for these contracts, so a log is
identified by its first topic alone and the fields are unpacked from the
remaining topics and the data blob.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from hexbytes import HexBytes
from web3 import Web3

from .errors import MalformedEventLog, UnknownEventKind
from .utils import _addr_key, _log, _normalize_log, _to_checksum, _to_hex


class EventKind(str, Enum):
    KYBER_MARKET_ADDED = "LogPriceFeedsKyberMarketAdded"
    KYBER_MARKET_REMOVED = "LogPriceFeedsKyberMarketRemoved"
    FACTORY_NEW = "LogCFDFactoryNew"
    FACTORY_NEW_BY_UPGRADE = "LogCFDFactoryNewByUpgrade"
    REGISTRY_PARTY = "LogCFDRegistryParty"
    REGISTRY_NEW = "LogCFDRegistryNew"
    REGISTRY_SALE = "LogCFDRegistrySale"
    INTERNAL_MARKET_ADDED = "LogPriceFeedsInternalMarketAdded"
    INTERNAL_PUSH = "LogPriceFeedsInternalPush"


# topic0 of every event the deployed contracts emit that we care about.
# Must be kept in step with the deployed contract interfaces.
SIGNATURES: Dict[str, EventKind] = {
    "0xa5a61bd6a6ada80224b49aa7fae9b176c38f70934cfc65e1c34495527cd91e23": EventKind.KYBER_MARKET_ADDED,
    "0xb54c2b8928a495bb6488be8bfd8a852a5815f53d28e2c454b49f5635e5d1d6a8": EventKind.KYBER_MARKET_REMOVED,
    "0x2d0c41699a808fef3dcfaa411d95703031d69229e73f5f3299fd6045deb4f962": EventKind.FACTORY_NEW,
    "0xe77178664194a5b1c28f6ee0f3fcb6d4404d796abfdf7edee18b68617768f48a": EventKind.FACTORY_NEW_BY_UPGRADE,
    "0x5180589a8efb07c77a3318d1c34775bb649df9d3e93ac2a75a8e9747e3aaccd4": EventKind.REGISTRY_PARTY,
    "0xd58bd0566ead9ed32659fb925d8d03f4bc085d137fafff69ba9d390275a6eaaf": EventKind.REGISTRY_NEW,
    "0x15d100e262556a93dd6558ac262964e8c338b642a9a6530ee29521879cfb9f1a": EventKind.REGISTRY_SALE,
}

# PriceFeedsInternal events, hashed from their declarations:
#   LogPriceFeedsInternalMarketAdded(bytes32 indexed marketId, string marketStr)
#   LogPriceFeedsInternalPush(bytes32 indexed marketId, uint256 timestamp, uint256 value)
SIGNATURES.update(
    {
        _to_hex(Web3.keccak(text="LogPriceFeedsInternalMarketAdded(bytes32,string)")): EventKind.INTERNAL_MARKET_ADDED,
        _to_hex(Web3.keccak(text="LogPriceFeedsInternalPush(bytes32,uint256,uint256)")): EventKind.INTERNAL_PUSH,
    }
)

SLOT_SIZE = 32
ADDRESS_SIZE = 20


def _as_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes(HexBytes(value))
    raise ValueError(f"expected bytes or hex string, got {type(value).__name__}")


def decode_address_from_slot(slot: Any) -> str:
    """Unpack an address left-padded into a 32 byte topic or data word.

    The address is the low 20 bytes; the 12 high bytes must be zero or the
    slot does not hold an address at all.
    """
    raw = _as_bytes(slot)
    if len(raw) != SLOT_SIZE:
        raise ValueError(f"address slot must be {SLOT_SIZE} bytes, got {len(raw)}")
    if any(raw[: SLOT_SIZE - ADDRESS_SIZE]):
        raise ValueError(f"slot {_to_hex(raw)} has non-zero high bytes")
    return _to_checksum("0x" + raw[SLOT_SIZE - ADDRESS_SIZE :].hex())


def address_topic(address: str) -> str:
    return "0x" + "0" * 24 + _to_checksum(address)[2:].lower()


def _last_word(data: Any) -> bytes:
    raw = _as_bytes(data)
    if len(raw) < SLOT_SIZE or len(raw) % SLOT_SIZE:
        raise ValueError(f"data blob of {len(raw)} bytes is not a sequence of 32 byte words")
    return raw[-SLOT_SIZE:]


def _factory_new_fields(topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
    fields = {
        "market_id": _to_hex(topics[1]),
        "cfd": decode_address_from_slot(_last_word(data)),
    }
    if len(topics) > 2:
        fields["creator"] = decode_address_from_slot(topics[2])
    return fields


def _cfd_topic_fields(topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
    return {"cfd": decode_address_from_slot(topics[1])}


def _party_fields(topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
    return {
        "cfd": decode_address_from_slot(topics[1]),
        "party": decode_address_from_slot(topics[2]),
    }


def _market_topic_fields(topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
    return {"market_id": _to_hex(topics[1])}


def _push_fields(topics: Sequence[bytes], data: bytes) -> Dict[str, Any]:
    raw = _as_bytes(data)
    if len(raw) != 2 * SLOT_SIZE:
        raise ValueError(f"push data must be two 32 byte words, got {len(raw)} bytes")
    return {
        "market_id": _to_hex(topics[1]),
        "timestamp": int.from_bytes(raw[:SLOT_SIZE], "big"),
        "value": int.from_bytes(raw[SLOT_SIZE:], "big"),
    }


_FIELD_EXTRACTORS: Dict[EventKind, Callable[[Sequence[bytes], bytes], Dict[str, Any]]] = {
    EventKind.KYBER_MARKET_ADDED: _market_topic_fields,
    EventKind.KYBER_MARKET_REMOVED: _market_topic_fields,
    EventKind.FACTORY_NEW: _factory_new_fields,
    EventKind.FACTORY_NEW_BY_UPGRADE: _cfd_topic_fields,
    EventKind.REGISTRY_PARTY: _party_fields,
    EventKind.REGISTRY_NEW: _cfd_topic_fields,
    EventKind.REGISTRY_SALE: _cfd_topic_fields,
    EventKind.INTERNAL_MARKET_ADDED: _market_topic_fields,
    EventKind.INTERNAL_PUSH: _push_fields,
}


@dataclass
class DecodedEvent:
    kind: EventKind
    fields: Dict[str, Any] = field(default_factory=dict)
    block_number: Optional[int] = None
    address: Optional[str] = None
    transaction_hash: Optional[str] = None
    log_index: Optional[int] = None

    @property
    def cfd(self) -> Optional[str]:
        return self.fields.get("cfd")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_name": self.kind.value,
            "block_number": self.block_number,
            "contract_address": self.address,
            "transaction_hash": self.transaction_hash,
            "log_index": self.log_index,
            "args": dict(self.fields),
        }


class EventLogDecoder:
    def __init__(self, signatures: Optional[Dict[str, EventKind]] = None):
        table = SIGNATURES if signatures is None else signatures
        self.signatures = {topic.lower(): kind for topic, kind in table.items()}
        self.skipped = 0

    def topic_for(self, kind: EventKind) -> str:
        for topic, candidate in self.signatures.items():
            if candidate is kind:
                return topic
        raise KeyError(f"no signature registered for {kind.value}")

    def kind_for(self, topic: Any) -> Optional[EventKind]:
        return self.signatures.get(_to_hex(topic))

    def decode(self, raw_log: Dict[str, Any]) -> DecodedEvent:
        log = _normalize_log(raw_log)
        topics = log.get("topics") or []
        topic0 = _to_hex(topics[0]) if topics else None
        kind = self.signatures.get(topic0) if topic0 else None
        if kind is None:
            raise UnknownEventKind(topic0)

        try:
            fields = _FIELD_EXTRACTORS[kind](topics, log.get("data") or b"")
        except (IndexError, ValueError) as exc:
            raise MalformedEventLog(
                f"malformed {kind.value} log in block {log.get('blockNumber')}: {exc}"
            ) from exc

        tx_hash = log.get("transactionHash")
        return DecodedEvent(
            kind=kind,
            fields=fields,
            block_number=log.get("blockNumber"),
            address=log.get("address"),
            transaction_hash=_to_hex(tx_hash) if tx_hash is not None else None,
            log_index=log.get("logIndex"),
        )

    def decode_many(self, logs: Iterable[Dict[str, Any]]) -> List[DecodedEvent]:
        """Decode a scan result, dropping logs with unregistered signatures.

        Unrelated contracts in the same block range emit their own events, so
        an unknown topic is skipped instead of failing the whole scan.
        """
        decoded = []
        skipped = 0
        for raw in logs:
            try:
                decoded.append(self.decode(raw))
            except UnknownEventKind:
                skipped += 1
        if skipped:
            self.skipped += skipped
            _log(f"WARN: skipped {skipped} log(s) with unregistered signatures")
        return decoded


def dedupe_by_address(events: Iterable[DecodedEvent], field_name: str = "cfd") -> List[DecodedEvent]:
    seen = set()
    result = []
    for event in events:
        address = event.fields.get(field_name)
        if address is None:
            continue
        key = _addr_key(address)
        if key in seen:
            continue
        seen.add(key)
        result.append(event)
    return result
