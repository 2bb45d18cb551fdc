from typing import Any, Dict, Optional


class CFDSyncError(Exception):
    """Base class for every error raised by cfd_sync."""


class FormulaError(CFDSyncError):
    pass


class InvalidNumericInput(FormulaError, ValueError):
    def __init__(self, value: Any, reason: Optional[str] = None):
        self.value = value
        detail = reason or f"expected Decimal, int or decimal string, got {type(value).__name__}"
        super().__init__(f"invalid numeric input {value!r}: {detail}")


class DivisionByZero(FormulaError, ZeroDivisionError):
    pass


class UnknownEventKind(CFDSyncError):
    def __init__(self, topic: Optional[str]):
        self.topic = topic
        super().__init__(f"no event kind registered for topic {topic}")


class MalformedEventLog(CFDSyncError, ValueError):
    pass


class ScanFailed(CFDSyncError):
    def __init__(self, address: Optional[str], from_block: int, cause: BaseException):
        self.address = address
        self.from_block = from_block
        self.cause = cause
        super().__init__(f"log scan failed for {address or 'all contracts'} from block {from_block}: {cause}")


class AttributeFetchFailed(CFDSyncError):
    def __init__(self, address: str, cause: BaseException):
        self.address = address
        self.cause = cause
        super().__init__(f"attribute fetch failed for {address}: {cause}")


class MarketResolutionFailed(CFDSyncError):
    def __init__(self, market_id: str, reason: str):
        self.market_id = market_id
        super().__init__(f"cannot resolve market {market_id}: {reason}")


class SubmissionFailed(CFDSyncError):
    """A queued push failed.

    ``stage`` is one of ``nonce``, ``sign``, ``broadcast``, ``receipt`` or
    ``rejected``. ``sent`` is True once the raw transaction reached the node,
    so callers can tell "never sent" from "sent but reverted or lost".
    """

    def __init__(
        self,
        stage: str,
        cause: Optional[BaseException] = None,
        sent: bool = False,
        receipt: Optional[Dict[str, Any]] = None,
        market_id: Optional[str] = None,
    ):
        self.stage = stage
        self.cause = cause
        self.sent = sent
        self.receipt = receipt
        self.market_id = market_id
        detail = str(cause) if cause is not None else "transaction status != 1"
        super().__init__(f"push for {market_id} failed at {stage}: {detail}")
