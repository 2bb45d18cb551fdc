import json
import re
import sys
import time
from decimal import Decimal
from typing import Any, Dict

from hexbytes import HexBytes
from web3 import Web3


EMPTY_ACCOUNT = "0x" + "0" * 40

# Values returned by ContractForDifference.status()
STATUS = {
    "CREATED": 0,
    "INITIATED": 1,
    "SALE": 2,
    "CLOSED": 3,
}
STATUS_NAMES = {code: name for name, code in STATUS.items()}

_MARKET_ID_RE = re.compile(r"^[A-Za-z]+_[A-Za-z]+_[A-Za-z]+$")


def _log(msg: str) -> None:
    ts = time.strftime("%Y-%m-%d %H:%M:%S", time.gmtime())
    sys.stderr.write(f"[{ts} UTC] {msg}\n")
    sys.stderr.flush()


def _to_hex(value: Any) -> str:
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        text = value.lower()
        return text if text.startswith("0x") else "0x" + text
    raise TypeError(f"cannot hex-encode {type(value).__name__}")


def _json_default(obj: Any) -> Any:
    if isinstance(obj, (bytes, bytearray)):
        return _to_hex(obj)
    if isinstance(obj, Decimal):
        return format(obj.normalize(), "f")
    if isinstance(obj, set):
        return list(obj)
    return str(obj)


def _json_dumps(obj: Any) -> str:
    return json.dumps(obj, default=_json_default, ensure_ascii=True)


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _to_checksum(addr: str) -> str:
    return Web3.to_checksum_address(addr)


def _addr_key(addr: str) -> str:
    return addr.lower()


def _parse_int(value: Any) -> int:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        if value.startswith("0x"):
            return int(value, 16)
        return int(value)
    return int(value)


def _normalize_log(log: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(log)
    if isinstance(out.get("transactionHash"), str):
        out["transactionHash"] = HexBytes(out["transactionHash"])
    if isinstance(out.get("data"), str):
        out["data"] = HexBytes(out["data"])
    if isinstance(out.get("topics"), (list, tuple)):
        out["topics"] = [HexBytes(t) for t in out["topics"]]
    for key in ("blockNumber", "transactionIndex", "logIndex"):
        if out.get(key) is not None:
            out[key] = _parse_int(out[key])
    if "address" in out and isinstance(out["address"], str):
        out["address"] = _to_checksum(out["address"])
    return out


def market_id_to_bytes(market_id: str) -> HexBytes:
    """Ledger form of a market id: keccak256 of the string (eg. Poloniex_ETH_USD)."""
    return Web3.keccak(text=market_id)


def is_valid_market_id(market_id: str) -> bool:
    return isinstance(market_id, str) and bool(_MARKET_ID_RE.match(market_id))


def tx_failed(status: Any) -> bool:
    # clients report success as 1, "0x1", "0x01" or True
    return status not in (1, "0x1", "0x01", True)
