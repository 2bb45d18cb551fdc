from typing import Any, Dict, List, Optional

from .errors import ScanFailed
from .ledger import Ledger


async def scan_logs(
    ledger: Ledger,
    address: str,
    topics: List[Optional[str]],
    from_block: int,
    to_block: Optional[int] = None,
    batch_size: int = 0,
) -> List[Dict[str, Any]]:
    """Fetch logs from from_block up to to_block (chain head when None).

    A positive batch_size splits the window into consecutive chunks. Any
    failure, including the head read, becomes ScanFailed.
    """
    try:
        head = await ledger.block_number() if to_block is None else int(to_block)
        if from_block > head:
            return []
        if batch_size <= 0:
            return await ledger.get_logs(address, from_block, head, topics)

        logs: List[Dict[str, Any]] = []
        current = from_block
        while current <= head:
            batch_to = min(current + batch_size - 1, head)
            logs.extend(await ledger.get_logs(address, current, batch_to, topics))
            current = batch_to + 1
        return logs
    except Exception as exc:
        raise ScanFailed(address, from_block, exc) from exc
