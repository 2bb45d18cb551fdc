"""Serialized price pushes from the daemon account.

The ledger needs strictly increasing nonces per account, so pushes are
signed and sent one at a time in FIFO order: a request is only picked up
once the previous one is mined or has failed. Nothing is retried; a caller
that wants a retry enqueues again.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Deque, Dict, Optional, Union

from .calc import assert_numeric, to_ledger_scale
from .errors import InvalidNumericInput, SubmissionFailed
from .ledger import Ledger, LocalSigner
from .utils import _log, _to_checksum, is_valid_market_id, market_id_to_bytes, tx_failed

DEFAULT_PUSH_GAS_LIMIT = 700000
DEFAULT_PUSH_INTERVAL = 5.0


class PushState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in_flight"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass
class PushRequest:
    market_id: str
    value: Decimal
    ledger_value: int
    ts: int
    future: "asyncio.Future[Dict[str, Any]]"
    on_confirmed: Optional[Callable[[Dict[str, Any]], Any]] = None
    on_failed: Optional[Callable[[SubmissionFailed], Any]] = None
    state: PushState = PushState.PENDING
    error: Optional[SubmissionFailed] = field(default=None, repr=False)


class PushQueue:
    def __init__(self, ledger: Ledger, signer: LocalSigner, config: Dict[str, Any]):
        self.ledger = ledger
        self.signer = signer
        self.feeds_address = _to_checksum(config.get("price_feeds_internal_address") or config["price_feeds_address"])
        self.account = _to_checksum(config.get("daemon_account") or signer.address)
        self.decimals = int(config.get("decimals", 18))
        self.gas_limit = int(config.get("push_gas_limit", DEFAULT_PUSH_GAS_LIMIT))
        self.gas_price = config.get("gas_price")
        self.interval = float(config.get("push_interval", DEFAULT_PUSH_INTERVAL))

        self._pending: Deque[PushRequest] = deque()
        self._in_flight: Optional[PushRequest] = None
        self._task: Optional[asyncio.Task] = None
        self._scheduler: Optional[asyncio.Task] = None

    @property
    def in_flight(self) -> Optional[PushRequest]:
        return self._in_flight

    @property
    def pending(self) -> int:
        return len(self._pending)

    def enqueue(
        self,
        market_id: str,
        value: Union[Decimal, int, str],
        ts: Optional[int] = None,
        on_confirmed: Optional[Callable[[Dict[str, Any]], Any]] = None,
        on_failed: Optional[Callable[[SubmissionFailed], Any]] = None,
    ) -> "asyncio.Future[Dict[str, Any]]":
        """Queue a push; the future resolves with the receipt or fails with SubmissionFailed."""
        if not is_valid_market_id(market_id):
            raise ValueError(f"invalid market id {market_id!r}")
        amount = assert_numeric(value)
        if amount < 0:
            raise InvalidNumericInput(value, "price must not be negative")
        scaled = to_ledger_scale(amount, self.decimals)
        if scaled != scaled.to_integral_value():
            raise InvalidNumericInput(value, f"more than {self.decimals} fractional digits")

        request = PushRequest(
            market_id=market_id,
            value=amount,
            ledger_value=int(scaled),
            ts=int(time.time() * 1000) if ts is None else int(ts),
            future=asyncio.get_running_loop().create_future(),
            on_confirmed=on_confirmed,
            on_failed=on_failed,
        )
        self._pending.append(request)
        return request.future

    async def push(
        self,
        market_id: str,
        value: Union[Decimal, int, str],
        ts: Optional[int] = None,
    ) -> Dict[str, Any]:
        return await self.enqueue(market_id, value, ts)

    def tick(self) -> bool:
        """Start the oldest pending push if nothing is in flight."""
        if self._in_flight is not None or not self._pending:
            return False
        request = self._pending.popleft()
        request.state = PushState.IN_FLIGHT
        self._in_flight = request
        self._task = asyncio.get_running_loop().create_task(self._process(request))
        return True

    async def run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self.interval)

    def start(self) -> None:
        if self._scheduler is None or self._scheduler.done():
            self._scheduler = asyncio.get_running_loop().create_task(self.run())

    async def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel()
            try:
                await self._scheduler
            except asyncio.CancelledError:
                pass
            self._scheduler = None

    async def drain(self) -> None:
        """Wait until nothing is pending or in flight; works with or without start()."""
        while self._pending or self._in_flight is not None:
            self.tick()
            if self._task is not None and not self._task.done():
                await asyncio.wait({self._task})
            else:
                await asyncio.sleep(self.interval)

    async def _process(self, request: PushRequest) -> None:
        _log(f"Start pushing {request.value} on {request.market_id}...")
        try:
            receipt = await self._submit(request)
        except SubmissionFailed as exc:
            request.state = PushState.FAILED
            request.error = exc
            self._in_flight = None
            _log(f"WARN: {exc}")
            if not request.future.done():
                request.future.set_exception(exc)
            if request.on_failed is not None:
                self._notify(request.on_failed, exc)
            return

        request.state = PushState.CONFIRMED
        self._in_flight = None
        _log(f"Pushed {request.value} on {request.market_id} in block {receipt.get('blockNumber')}")
        if not request.future.done():
            request.future.set_result(receipt)
        if request.on_confirmed is not None:
            self._notify(request.on_confirmed, receipt)

    @staticmethod
    def _notify(callback: Callable[[Any], Any], arg: Any) -> None:
        try:
            callback(arg)
        except Exception as exc:
            _log(f"WARN: push callback {getattr(callback, '__name__', callback)!r} raised: {exc}")

    async def _submit(self, request: PushRequest) -> Dict[str, Any]:
        market = request.market_id
        try:
            nonce = await self.ledger.get_transaction_count(self.account)
        except Exception as exc:
            raise SubmissionFailed("nonce", exc, market_id=market) from exc

        tx_params: Dict[str, Any] = {"from": self.account, "nonce": nonce, "gas": self.gas_limit}
        if self.gas_price is not None:
            tx_params["gasPrice"] = int(self.gas_price)
        try:
            tx = await self.ledger.build_transaction(
                self.feeds_address,
                "push",
                [market_id_to_bytes(market), request.ledger_value, request.ts],
                tx_params,
            )
            raw = self.signer.sign(tx)
        except Exception as exc:
            raise SubmissionFailed("sign", exc, market_id=market) from exc

        try:
            tx_hash = await self.ledger.send_raw_transaction(raw)
        except Exception as exc:
            raise SubmissionFailed("broadcast", exc, market_id=market) from exc

        try:
            receipt = await self.ledger.wait_for_receipt(tx_hash)
        except Exception as exc:
            raise SubmissionFailed("receipt", exc, sent=True, market_id=market) from exc

        if tx_failed(receipt.get("status")):
            raise SubmissionFailed("rejected", sent=True, receipt=receipt, market_id=market)
        return receipt
