import os
from typing import Any, Dict

from .utils import _load_json, _to_checksum

PRIVATE_KEY_ENV = "CFD_SYNC_PRIVATE_KEY"

REQUIRED_KEYS = ("rpc_http", "cfd_factory_address", "cfd_registry_address", "price_feeds_address")
ADDRESS_KEYS = (
    "cfd_factory_address",
    "cfd_registry_address",
    "price_feeds_address",
    "price_feeds_internal_address",
    "price_feeds_kyber_address",
    "daemon_account",
)

DEFAULTS: Dict[str, Any] = {
    "rpc_ws": None,
    "deployment_block": 0,
    "decimals": 18,
    "log_batch_size": 0,
    "push_gas_limit": 700000,
    "push_interval": 5,
    "receipt_timeout": 120,
    "reconnect_delay": 5,
}


def resolve_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    missing = [key for key in REQUIRED_KEYS if not cfg.get(key)]
    if missing:
        raise ValueError(f"config is missing {', '.join(missing)}")

    out = dict(DEFAULTS)
    out.update(cfg)
    for key in ADDRESS_KEYS:
        if out.get(key):
            out[key] = _to_checksum(out[key])
    if not out.get("daemon_private_key") and os.environ.get(PRIVATE_KEY_ENV):
        out["daemon_private_key"] = os.environ[PRIVATE_KEY_ENV]
    return out


def load_config(path: str) -> Dict[str, Any]:
    return resolve_config(_load_json(path))
