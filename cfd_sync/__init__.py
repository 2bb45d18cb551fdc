"""Off-chain sync layer for the CFD ledger contracts.

- calc: fixed-point formulas identical to the contract math
- events: raw log decoding and address dedupe
- aggregator: contract-state queries rebuilt from discovery events
- feeds: market names, prices, market listing and push history
- push_queue: single-flight price pushes from the daemon account
"""

from .aggregator import CFDAggregator, CFDSnapshot
from .errors import (
    AttributeFetchFailed,
    CFDSyncError,
    DivisionByZero,
    InvalidNumericInput,
    MalformedEventLog,
    MarketResolutionFailed,
    ScanFailed,
    SubmissionFailed,
    UnknownEventKind,
)
from .events import DecodedEvent, EventKind, EventLogDecoder, decode_address_from_slot, dedupe_by_address
from .feeds import PriceFeeds
from .ledger import Ledger, LocalSigner
from .push_queue import PushQueue, PushRequest, PushState

__version__ = "0.1.0"

__all__ = [
    "AttributeFetchFailed",
    "CFDAggregator",
    "CFDSnapshot",
    "CFDSyncError",
    "DecodedEvent",
    "DivisionByZero",
    "EventKind",
    "EventLogDecoder",
    "InvalidNumericInput",
    "Ledger",
    "LocalSigner",
    "MalformedEventLog",
    "MarketResolutionFailed",
    "PriceFeeds",
    "PushQueue",
    "PushRequest",
    "PushState",
    "ScanFailed",
    "SubmissionFailed",
    "UnknownEventKind",
    "decode_address_from_slot",
    "dedupe_by_address",
]
