import asyncio
import json
from typing import Any, Callable, Dict, List, Optional

import websockets

from .errors import UnknownEventKind
from .events import DecodedEvent, EventLogDecoder
from .utils import _json_dumps, _log, _normalize_log, _to_checksum


def _print_event(event: DecodedEvent) -> None:
    _log(_json_dumps(event.to_dict()))


class EventWatcher:
    """Live feed of CFD factory, registry and price feeds events (pushes included) over eth_subscribe."""

    def __init__(
        self,
        config: Dict[str, Any],
        on_event: Optional[Callable[[DecodedEvent], Any]] = None,
        decoder: Optional[EventLogDecoder] = None,
    ):
        self.rpc_ws = config.get("rpc_ws")
        self.reconnect_delay = int(config.get("reconnect_delay", 5))
        self.addresses: List[str] = sorted(
            {
                _to_checksum(config[key])
                for key in (
                    "cfd_factory_address",
                    "cfd_registry_address",
                    "price_feeds_address",
                    "price_feeds_internal_address",
                    "price_feeds_kyber_address",
                )
                if config.get(key)
            }
        )
        self.on_event = on_event or _print_event
        self.decoder = decoder or EventLogDecoder()
        self._ws_id = 0

    async def run(self) -> None:
        if not self.rpc_ws:
            raise RuntimeError("rpc_ws is required for websocket subscription")

        backoff = max(self.reconnect_delay, 1)
        max_backoff = 60

        while True:
            try:
                async with websockets.connect(self.rpc_ws, ping_interval=20, ping_timeout=20) as ws:
                    _log("Websocket connected, subscribing to logs...")
                    sub_id = await self._ws_subscribe(ws)
                    _log(f"Subscribed: {sub_id}")
                    backoff = max(self.reconnect_delay, 1)

                    async for message in ws:
                        await self.handle_message(message)
            except Exception as exc:
                _log(f"Websocket error: {exc}")
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, max_backoff)

    async def _ws_subscribe(self, ws: Any) -> str:
        self._ws_id += 1
        req_id = self._ws_id
        payload = {
            "jsonrpc": "2.0",
            "id": req_id,
            "method": "eth_subscribe",
            "params": ["logs", {"address": self.addresses}],
        }
        await ws.send(json.dumps(payload))

        while True:
            message = await ws.recv()
            data = json.loads(message)
            if data.get("id") == req_id:
                if "result" in data:
                    return data["result"]
                raise RuntimeError(f"Subscribe failed: {data}")
            await self.handle_message(message)

    async def handle_message(self, message: Any) -> Optional[DecodedEvent]:
        payload = json.loads(message) if isinstance(message, (str, bytes)) else message
        if payload.get("method") != "eth_subscription":
            if payload.get("id") is not None and payload.get("error"):
                _log(f"WS error: {payload}")
            return None

        log = payload.get("params", {}).get("result")
        if not log:
            return None
        normalized = _normalize_log(log)
        if normalized.get("removed"):
            _log(f"WARN: chain reorg removed log {log.get('transactionHash')}:{normalized.get('logIndex')}")
            return None
        try:
            event = self.decoder.decode(normalized)
        except UnknownEventKind:
            return None
        result = self.on_event(event)
        if asyncio.iscoroutine(result):
            await result
        return event
