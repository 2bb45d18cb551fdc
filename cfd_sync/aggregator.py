"""Point-in-time views of the deployed CFDs.

There is no enumerable index of contracts on the ledger, so every query
rebuilds its set from discovery events:

    scan -> decode -> dedupe -> fetch snapshots -> filter -> enrich

A query either returns the full result or raises; callers never get a
partial list.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .calc import cut_off_price, from_ledger_scale, joiner_fee
from .errors import AttributeFetchFailed
from .events import DecodedEvent, EventKind, EventLogDecoder, address_topic, dedupe_by_address
from .feeds import PriceFeeds
from .ledger import Ledger
from .scan import scan_logs
from .utils import (
    STATUS,
    STATUS_NAMES,
    _addr_key,
    _log,
    _to_checksum,
    _to_hex,
    is_valid_market_id,
    market_id_to_bytes,
)


@dataclass
class CFDSnapshot:
    """Raw on-ledger state of one CFD, amounts still in ledger scale."""

    address: str
    buyer: str
    seller: str
    market_id: str
    strike_price: int
    notional_amount: int
    buyer_selling: bool
    seller_selling: bool
    status: int
    buyer_initial_notional: int
    seller_initial_notional: int
    buyer_deposit_balance: int
    seller_deposit_balance: int
    buyer_sale_strike_price: int
    seller_sale_strike_price: int
    buyer_initial_strike_price: int
    seller_initial_strike_price: int
    terminated: bool
    upgrade_called_by: str
    closed: bool
    initiated: bool

    @classmethod
    def from_calls(
        cls,
        address: str,
        attrs: Sequence[Any],
        attrs2: Sequence[Any],
        attrs3: Sequence[Any],
        closed: bool,
        initiated: bool,
    ) -> "CFDSnapshot":
        buyer, seller, market, strike, notional, buyer_selling, seller_selling, status = attrs
        (
            buyer_initial_notional,
            seller_initial_notional,
            buyer_deposit,
            seller_deposit,
            buyer_sale_strike,
            seller_sale_strike,
            buyer_initial_strike,
            seller_initial_strike,
        ) = attrs2
        terminated, upgrade_called_by = attrs3
        return cls(
            address=address,
            buyer=buyer,
            seller=seller,
            market_id=_to_hex(market),
            strike_price=int(strike),
            notional_amount=int(notional),
            buyer_selling=bool(buyer_selling),
            seller_selling=bool(seller_selling),
            status=int(status),
            buyer_initial_notional=int(buyer_initial_notional),
            seller_initial_notional=int(seller_initial_notional),
            buyer_deposit_balance=int(buyer_deposit),
            seller_deposit_balance=int(seller_deposit),
            buyer_sale_strike_price=int(buyer_sale_strike),
            seller_sale_strike_price=int(seller_sale_strike),
            buyer_initial_strike_price=int(buyer_initial_strike),
            seller_initial_strike_price=int(seller_initial_strike),
            terminated=bool(terminated),
            upgrade_called_by=upgrade_called_by,
            closed=bool(closed),
            initiated=bool(initiated),
        )

    def is_party(self, party: str) -> bool:
        key = _addr_key(party)
        return key in (_addr_key(self.buyer), _addr_key(self.seller))


Predicate = Callable[[CFDSnapshot], bool]


def _not_closed(snapshot: CFDSnapshot) -> bool:
    return not snapshot.closed


def _awaiting_counterparty(snapshot: CFDSnapshot) -> bool:
    return not snapshot.initiated and not snapshot.closed


def _on_sale(snapshot: CFDSnapshot) -> bool:
    return (
        snapshot.status == STATUS["SALE"]
        and not snapshot.closed
        and (snapshot.buyer_selling or snapshot.seller_selling)
    )


class CFDAggregator:
    def __init__(
        self,
        ledger: Ledger,
        config: Dict[str, Any],
        feeds: Optional[PriceFeeds] = None,
        decoder: Optional[EventLogDecoder] = None,
    ):
        self.ledger = ledger
        self.factory_address = _to_checksum(config["cfd_factory_address"])
        self.registry_address = _to_checksum(config["cfd_registry_address"])
        self.deployment_block = int(config.get("deployment_block", 0))
        self.log_batch_size = int(config.get("log_batch_size", 0))
        self.decimals = int(config.get("decimals", 18))
        self.feeds = feeds or PriceFeeds(ledger, config)
        self.decoder = decoder or EventLogDecoder()

    async def contracts_for_market(
        self,
        market_id: str,
        from_block: Optional[int] = None,
        include_closed: bool = False,
    ) -> List[Dict[str, Any]]:
        if not is_valid_market_id(market_id):
            raise ValueError(f"invalid market id {market_id!r}")
        market_hash = _to_hex(market_id_to_bytes(market_id))
        return await self._query(
            EventKind.FACTORY_NEW,
            self.factory_address,
            [self.decoder.topic_for(EventKind.FACTORY_NEW), market_hash],
            from_block,
            match=lambda event: event.fields.get("market_id") == market_hash,
            keep=None if include_closed else _not_closed,
        )

    async def contracts_for_party(
        self,
        party: str,
        from_block: Optional[int] = None,
        include_closed: bool = False,
        include_transferred: bool = False,
    ) -> List[Dict[str, Any]]:
        party = _to_checksum(party)
        party_key = _addr_key(party)

        def keep(snapshot: CFDSnapshot) -> bool:
            if not include_closed and snapshot.closed:
                return False
            # party sold or transferred its side away
            if not include_transferred and not snapshot.is_party(party):
                return False
            return True

        return await self._query(
            EventKind.REGISTRY_PARTY,
            self.registry_address,
            [self.decoder.topic_for(EventKind.REGISTRY_PARTY), None, address_topic(party)],
            from_block,
            match=lambda event: _addr_key(event.fields.get("party", "")) == party_key,
            keep=keep,
        )

    async def contracts_waiting_counterparty(self, from_block: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._query(
            EventKind.REGISTRY_NEW,
            self.registry_address,
            [self.decoder.topic_for(EventKind.REGISTRY_NEW)],
            from_block,
            keep=_awaiting_counterparty,
        )

    async def contracts_for_sale(self, from_block: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self._query(
            EventKind.REGISTRY_SALE,
            self.registry_address,
            [self.decoder.topic_for(EventKind.REGISTRY_SALE)],
            from_block,
            keep=_on_sale,
        )

    async def get_cfd(self, address: str) -> Dict[str, Any]:
        snapshot = await self._fetch_snapshot(_to_checksum(address))
        records = await self._enrich([(None, snapshot)])
        return records[0]

    async def _query(
        self,
        kind: EventKind,
        address: str,
        topics: List[Optional[str]],
        from_block: Optional[int],
        match: Optional[Callable[[DecodedEvent], bool]] = None,
        keep: Optional[Predicate] = None,
    ) -> List[Dict[str, Any]]:
        start = self.deployment_block if from_block is None else int(from_block)
        logs = await scan_logs(self.ledger, address, topics, start, batch_size=self.log_batch_size)

        events = [
            event
            for event in self.decoder.decode_many(logs)
            if event.kind is kind and (match is None or match(event))
        ]
        events = dedupe_by_address(events)

        snapshots = await self._fetch_snapshots([event.cfd for event in events])
        selected = [
            (event, snapshot)
            for event, snapshot in zip(events, snapshots)
            if keep is None or keep(snapshot)
        ]
        records = await self._enrich(selected)
        _log(f"{kind.value}: {len(logs)} log(s), {len(events)} contract(s), {len(records)} selected")
        return records

    async def _fetch_snapshot(self, address: str) -> CFDSnapshot:
        try:
            attrs, attrs2, attrs3, closed, initiated = await asyncio.gather(
                self.ledger.call(address, "getCfdAttributes"),
                self.ledger.call(address, "getCfdAttributes2"),
                self.ledger.call(address, "getCfdAttributes3"),
                self.ledger.call(address, "closed"),
                self.ledger.call(address, "initiated"),
            )
            return CFDSnapshot.from_calls(address, attrs, attrs2, attrs3, closed, initiated)
        except Exception as exc:
            raise AttributeFetchFailed(address, exc) from exc

    async def _fetch_snapshots(self, addresses: List[str]) -> List[CFDSnapshot]:
        tasks = [asyncio.ensure_future(self._fetch_snapshot(address)) for address in addresses]
        try:
            # gather keeps input order, whatever order the reads complete in
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

    async def _enrich(self, selected: List[Tuple[Optional[DecodedEvent], CFDSnapshot]]) -> List[Dict[str, Any]]:
        if not selected:
            return []
        names = await self.feeds.market_names(snapshot.market_id for _, snapshot in selected)
        return [self._record(event, snapshot, names[snapshot.market_id]) for event, snapshot in selected]

    def _record(self, event: Optional[DecodedEvent], snapshot: CFDSnapshot, market: str) -> Dict[str, Any]:
        def scaled(value: int):
            return from_ledger_scale(value, self.decimals)

        strike = scaled(snapshot.strike_price)
        notional = scaled(snapshot.notional_amount)
        buyer_deposit = scaled(snapshot.buyer_deposit_balance)
        seller_deposit = scaled(snapshot.seller_deposit_balance)

        buyer_liquidation = seller_liquidation = None
        if notional != 0:
            buyer_liquidation = cut_off_price(
                strike_price=strike,
                notional_amount=notional,
                deposit_balance=buyer_deposit,
                buyer_side=True,
            )
            seller_liquidation = cut_off_price(
                strike_price=strike,
                notional_amount=notional,
                deposit_balance=seller_deposit,
                buyer_side=False,
            )

        return {
            "address": snapshot.address,
            "market": market,
            "market_id": snapshot.market_id,
            "status": STATUS_NAMES.get(snapshot.status, str(snapshot.status)),
            "closed": snapshot.closed,
            "initiated": snapshot.initiated,
            "liquidated": snapshot.terminated,
            "upgrade_called_by": snapshot.upgrade_called_by,
            "buyer": snapshot.buyer,
            "seller": snapshot.seller,
            "buyer_is_selling": snapshot.buyer_selling,
            "seller_is_selling": snapshot.seller_selling,
            "strike_price": strike,
            "notional_amount": notional,
            "joiner_fee": joiner_fee(notional),
            "buyer_initial_notional": scaled(snapshot.buyer_initial_notional),
            "seller_initial_notional": scaled(snapshot.seller_initial_notional),
            "buyer_deposit_balance": buyer_deposit,
            "seller_deposit_balance": seller_deposit,
            "buyer_sale_strike_price": scaled(snapshot.buyer_sale_strike_price),
            "seller_sale_strike_price": scaled(snapshot.seller_sale_strike_price),
            "buyer_initial_strike_price": scaled(snapshot.buyer_initial_strike_price),
            "seller_initial_strike_price": scaled(snapshot.seller_initial_strike_price),
            "buyer_liquidation_price": buyer_liquidation,
            "seller_liquidation_price": seller_liquidation,
            "discovered_block": event.block_number if event else None,
        }
