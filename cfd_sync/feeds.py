import asyncio
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from hexbytes import HexBytes

from .calc import from_ledger_scale
from .errors import MarketResolutionFailed
from .events import DecodedEvent, EventKind, EventLogDecoder, dedupe_by_address
from .ledger import Ledger
from .scan import scan_logs
from .utils import _log, _to_checksum, _to_hex, is_valid_market_id, market_id_to_bytes

# market listing source -> the "market added" event it is discovered from
MARKET_SOURCES = {
    "internal": EventKind.INTERNAL_MARKET_ADDED,
    "kyber": EventKind.KYBER_MARKET_ADDED,
}


class PriceFeeds:
    """Market registry and latest-price reads against the price feeds contract.

    hash -> name goes through the on-ledger registry (marketNames) since the
    keccak cannot be reversed; resolved names are cached per instance.
    Market listings and push history are rebuilt from the feed contracts'
    own logs.
    """

    def __init__(
        self,
        ledger: Ledger,
        config: Dict[str, Any],
        decoder: Optional[EventLogDecoder] = None,
    ):
        self.ledger = ledger
        self.address = _to_checksum(config["price_feeds_address"])
        self.internal_address = _to_checksum(config.get("price_feeds_internal_address") or config["price_feeds_address"])
        kyber = config.get("price_feeds_kyber_address")
        self.kyber_address = _to_checksum(kyber) if kyber else None
        self.decimals = int(config.get("decimals", 18))
        self.deployment_block = int(config.get("deployment_block", 0))
        self.log_batch_size = int(config.get("log_batch_size", 0))
        self.decoder = decoder or EventLogDecoder()
        self._names: Dict[str, str] = {}

    async def market_name(self, market_id: Any) -> str:
        key = _to_hex(market_id)
        cached = self._names.get(key)
        if cached is not None:
            return cached
        try:
            name = await self.ledger.call(self.address, "marketNames", HexBytes(key))
        except Exception as exc:
            raise MarketResolutionFailed(key, f"registry lookup failed: {exc}") from exc
        if not name:
            raise MarketResolutionFailed(key, "not registered")
        if _to_hex(market_id_to_bytes(name)) != key:
            raise MarketResolutionFailed(key, f"registry name {name!r} does not hash to this id")
        self._names[key] = name
        return name

    async def market_names(self, market_ids: Iterable[Any]) -> Dict[str, str]:
        distinct = list(dict.fromkeys(_to_hex(m) for m in market_ids))
        names = await asyncio.gather(*(self.market_name(m) for m in distinct))
        return dict(zip(distinct, names))

    async def read(self, market_id: str) -> Decimal:
        if not is_valid_market_id(market_id):
            raise ValueError(f"invalid market id {market_id!r}")
        value = await self.ledger.call(self.address, "read", market_id_to_bytes(market_id))
        return from_ledger_scale(value, self.decimals)

    async def is_market_active(self, market_id: Any) -> bool:
        key = _to_hex(market_id)
        try:
            return bool(await self.ledger.call(self.address, "isMarketActive", HexBytes(key)))
        except Exception as exc:
            raise MarketResolutionFailed(key, f"isMarketActive failed: {exc}") from exc

    async def markets(self, source: str = "internal", from_block: Optional[int] = None) -> List[Dict[str, Any]]:
        """Every market ever added to a feed, with its name and whether it is active now.

        Removed markets stay in the list with active False.
        """
        kind = MARKET_SOURCES.get(source)
        if kind is None:
            raise ValueError(f"unknown market source {source!r}")
        address = self.kyber_address if kind is EventKind.KYBER_MARKET_ADDED else self.internal_address
        if address is None:
            raise ValueError(f"no contract address configured for {source} markets")

        start = self.deployment_block if from_block is None else int(from_block)
        logs = await scan_logs(
            self.ledger,
            address,
            [self.decoder.topic_for(kind)],
            start,
            batch_size=self.log_batch_size,
        )
        events = [event for event in self.decoder.decode_many(logs) if event.kind is kind]
        events = dedupe_by_address(events, "market_id")

        async def describe(event: DecodedEvent) -> Dict[str, Any]:
            market_id = event.fields["market_id"]
            name, active = await asyncio.gather(self.market_name(market_id), self.is_market_active(market_id))
            return {
                "market_id": market_id,
                "market": name,
                "active": active,
                "added_block": event.block_number,
            }

        result = list(await asyncio.gather(*(describe(event) for event in events)))
        _log(f"{kind.value}: {len(logs)} log(s), {len(result)} market(s)")
        return result

    async def push_history(
        self,
        market_id: Optional[str] = None,
        from_block: Optional[int] = None,
        to_block: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Values pushed to the internal feed, oldest first, optionally for one market."""
        topics: List[Optional[str]] = [self.decoder.topic_for(EventKind.INTERNAL_PUSH)]
        market_hash = None
        if market_id is not None:
            if not is_valid_market_id(market_id):
                raise ValueError(f"invalid market id {market_id!r}")
            market_hash = _to_hex(market_id_to_bytes(market_id))
            topics.append(market_hash)

        start = self.deployment_block if from_block is None else int(from_block)
        logs = await scan_logs(
            self.ledger,
            self.internal_address,
            topics,
            start,
            to_block=to_block,
            batch_size=self.log_batch_size,
        )
        events = [
            event
            for event in self.decoder.decode_many(logs)
            if event.kind is EventKind.INTERNAL_PUSH
            and (market_hash is None or event.fields["market_id"] == market_hash)
        ]
        if not events:
            return []

        names = await self.market_names(event.fields["market_id"] for event in events)
        return [
            {
                "market_id": event.fields["market_id"],
                "market": names[event.fields["market_id"]],
                "value": from_ledger_scale(event.fields["value"], self.decimals),
                "timestamp": event.fields["timestamp"],
                "block_number": event.block_number,
                "transaction_hash": event.transaction_hash,
            }
            for event in events
        ]
