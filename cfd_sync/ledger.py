from typing import Any, Dict, List, Optional, Sequence

from eth_account import Account
from hexbytes import HexBytes
from web3 import AsyncHTTPProvider, AsyncWeb3

from .abi import LEDGER_ABI
from .utils import _normalize_log, _to_checksum


class Ledger:
    """Async read/write/log access to the deployed contracts.

    Every method is a suspension point. Nothing here retries: failures go
    straight back to the caller.
    """

    def __init__(self, w3: AsyncWeb3, abi: Optional[List[Dict[str, Any]]] = None, receipt_timeout: float = 120):
        self.w3 = w3
        self.abi = abi or LEDGER_ABI
        self.receipt_timeout = receipt_timeout
        self._contracts: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Ledger":
        rpc_http = config.get("rpc_http")
        if not rpc_http:
            raise RuntimeError("rpc_http is required")
        w3 = AsyncWeb3(AsyncHTTPProvider(rpc_http))
        return cls(w3, receipt_timeout=float(config.get("receipt_timeout", 120)))

    def _contract(self, address: str) -> Any:
        checksum = _to_checksum(address)
        contract = self._contracts.get(checksum)
        if contract is None:
            contract = self.w3.eth.contract(address=checksum, abi=self.abi)
            self._contracts[checksum] = contract
        return contract

    async def call(self, address: str, method: str, *args: Any) -> Any:
        fn = getattr(self._contract(address).functions, method)
        return await fn(*args).call()

    async def block_number(self) -> int:
        return await self.w3.eth.block_number

    async def get_logs(
        self,
        address: Optional[str],
        from_block: int,
        to_block: int,
        topics: Optional[Sequence[Optional[str]]] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"fromBlock": from_block, "toBlock": to_block}
        if address:
            params["address"] = _to_checksum(address)
        if topics:
            params["topics"] = list(topics)
        logs = await self.w3.eth.get_logs(params)
        return [_normalize_log(dict(log)) for log in logs]

    async def get_transaction_count(self, account: str) -> int:
        return await self.w3.eth.get_transaction_count(_to_checksum(account), "pending")

    async def build_transaction(
        self,
        address: str,
        method: str,
        args: Sequence[Any],
        tx_params: Dict[str, Any],
    ) -> Dict[str, Any]:
        fn = getattr(self._contract(address).functions, method)
        return await fn(*args).build_transaction(tx_params)

    async def send_raw_transaction(self, raw: bytes) -> HexBytes:
        return await self.w3.eth.send_raw_transaction(raw)

    async def wait_for_receipt(self, tx_hash: HexBytes) -> Dict[str, Any]:
        receipt = await self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        return dict(receipt)


class LocalSigner:
    """Signs transactions for the daemon account with an in-memory key."""

    def __init__(self, private_key: str):
        self._account = Account.from_key(private_key)

    @property
    def address(self) -> str:
        return self._account.address

    def sign(self, tx: Dict[str, Any]) -> bytes:
        return bytes(self._account.sign_transaction(tx).raw_transaction)
