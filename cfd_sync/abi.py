from typing import Any, Dict, List


def _fn(
    name: str,
    inputs: List[Dict[str, str]],
    outputs: List[Dict[str, str]],
    mutability: str = "view",
) -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": [dict(item, internalType=item["type"]) for item in inputs],
        "outputs": [dict(item, internalType=item["type"]) for item in outputs],
        "stateMutability": mutability,
    }


def _arg(name: str, type_: str) -> Dict[str, str]:
    return {"name": name, "type": type_}


CFD_ABI: List[Dict[str, Any]] = [
    _fn(
        "getCfdAttributes",
        [],
        [
            _arg("buyer", "address"),
            _arg("seller", "address"),
            _arg("market", "bytes32"),
            _arg("strikePrice", "uint256"),
            _arg("notionalAmountDai", "uint256"),
            _arg("buyerSelling", "bool"),
            _arg("sellerSelling", "bool"),
            _arg("status", "uint8"),
        ],
    ),
    _fn(
        "getCfdAttributes2",
        [],
        [
            _arg("buyerInitialNotional", "uint256"),
            _arg("sellerInitialNotional", "uint256"),
            _arg("buyerDepositBalance", "uint256"),
            _arg("sellerDepositBalance", "uint256"),
            _arg("buyerSaleStrikePrice", "uint256"),
            _arg("sellerSaleStrikePrice", "uint256"),
            _arg("buyerInitialStrikePrice", "uint256"),
            _arg("sellerInitialStrikePrice", "uint256"),
        ],
    ),
    _fn(
        "getCfdAttributes3",
        [],
        [_arg("terminated", "bool"), _arg("upgradeCalledBy", "address")],
    ),
    _fn("closed", [], [_arg("", "bool")]),
    _fn("initiated", [], [_arg("", "bool")]),
]

FEEDS_ABI: List[Dict[str, Any]] = [
    _fn("marketNames", [_arg("marketId", "bytes32")], [_arg("", "string")]),
    _fn("isMarketActive", [_arg("marketId", "bytes32")], [_arg("", "bool")]),
    _fn("read", [_arg("marketId", "bytes32")], [_arg("", "uint256")]),
    _fn(
        "push",
        [_arg("marketId", "bytes32"), _arg("value", "uint256"), _arg("timestamp", "uint256")],
        [],
        mutability="nonpayable",
    ),
]

# one handle serves every contract; function names do not collide
LEDGER_ABI: List[Dict[str, Any]] = CFD_ABI + FEEDS_ABI
