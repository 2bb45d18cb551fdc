"""cfd-sync command line.

Usage:
  cfd-sync --config config.json market Poloniex_ETH_USD [--include-closed]
  cfd-sync --config config.json party 0xabc... [--include-closed] [--include-transferred]
  cfd-sync --config config.json waiting
  cfd-sync --config config.json for-sale
  cfd-sync --config config.json cfd 0xabc...
  cfd-sync --config config.json read Poloniex_ETH_USD
  cfd-sync --config config.json markets [--source internal|kyber]
  cfd-sync --config config.json pushes [--market Poloniex_ETH_USD] [--to-block N]
  cfd-sync --config config.json push Poloniex_ETH_USD 2071.35
  cfd-sync --config config.json watch
"""

import argparse
import asyncio
from typing import Any, Dict, List, Optional

from .aggregator import CFDAggregator
from .config import load_config
from .feeds import PriceFeeds
from .ledger import Ledger, LocalSigner
from .push_queue import PushQueue
from .utils import _json_dumps
from .watcher import EventWatcher


async def _run_query(cfg: Dict[str, Any], args: argparse.Namespace) -> Any:
    ledger = Ledger.from_config(cfg)
    if args.command == "read":
        return {"market": args.market, "value": await PriceFeeds(ledger, cfg).read(args.market)}
    if args.command == "markets":
        return await PriceFeeds(ledger, cfg).markets(args.source, from_block=args.from_block)
    if args.command == "pushes":
        return await PriceFeeds(ledger, cfg).push_history(
            args.market, from_block=args.from_block, to_block=args.to_block
        )

    aggregator = CFDAggregator(ledger, cfg)
    if args.command == "market":
        return await aggregator.contracts_for_market(
            args.market, from_block=args.from_block, include_closed=args.include_closed
        )
    if args.command == "party":
        return await aggregator.contracts_for_party(
            args.party,
            from_block=args.from_block,
            include_closed=args.include_closed,
            include_transferred=args.include_transferred,
        )
    if args.command == "waiting":
        return await aggregator.contracts_waiting_counterparty(from_block=args.from_block)
    if args.command == "for-sale":
        return await aggregator.contracts_for_sale(from_block=args.from_block)
    if args.command == "cfd":
        return await aggregator.get_cfd(args.address)
    raise ValueError(f"unknown command {args.command}")


async def _run_push(cfg: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    if not cfg.get("daemon_private_key"):
        raise RuntimeError("daemon_private_key (or CFD_SYNC_PRIVATE_KEY) is required to push")
    queue = PushQueue(Ledger.from_config(cfg), LocalSigner(cfg["daemon_private_key"]), cfg)
    future = queue.enqueue(args.market, args.value, args.ts)
    queue.start()
    try:
        return await future
    finally:
        await queue.stop()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="CFD ledger sync tools")
    parser.add_argument("--config", default="config.json", help="Path to config JSON")

    sub = parser.add_subparsers(dest="command", required=True)

    market_parser = sub.add_parser("market", help="Contracts for a market")
    market_parser.add_argument("market", type=str)
    market_parser.add_argument("--include-closed", action="store_true")

    party_parser = sub.add_parser("party", help="Contracts for a buyer or seller")
    party_parser.add_argument("party", type=str)
    party_parser.add_argument("--include-closed", action="store_true")
    party_parser.add_argument("--include-transferred", action="store_true")

    sub.add_parser("waiting", help="Contracts waiting for a counterparty")
    sub.add_parser("for-sale", help="Contracts with a side for sale")

    markets_parser = sub.add_parser("markets", help="Markets listed on a price feed")
    markets_parser.add_argument("--source", choices=["internal", "kyber"], default="internal")

    pushes_parser = sub.add_parser("pushes", help="Price push history")
    pushes_parser.add_argument("--market", type=str, default=None)
    pushes_parser.add_argument("--to-block", type=int, default=None)

    for query_parser in sub.choices.values():
        query_parser.add_argument("--from-block", type=int, default=None)

    cfd_parser = sub.add_parser("cfd", help="Details of one contract")
    cfd_parser.add_argument("address", type=str)

    read_parser = sub.add_parser("read", help="Latest price for a market")
    read_parser.add_argument("market", type=str)

    push_parser = sub.add_parser("push", help="Push a price from the daemon account")
    push_parser.add_argument("market", type=str)
    push_parser.add_argument("value", type=str)
    push_parser.add_argument("--ts", type=int, default=None, help="Read timestamp (epoch ms)")

    sub.add_parser("watch", help="Stream CFD events")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    args = build_parser().parse_args(argv)
    cfg = load_config(args.config)

    if args.command == "watch":
        asyncio.run(EventWatcher(cfg).run())
        return

    if args.command == "push":
        receipt = asyncio.run(_run_push(cfg, args))
        print(_json_dumps(receipt))
        return

    result = asyncio.run(_run_query(cfg, args))
    print(_json_dumps(result))


if __name__ == "__main__":
    main()
