"""Module exposing the relay FastAPI app instance for uvicorn.

Lets ``uvicorn hnsbridge.app:app`` serve the relay directly, using the
system resolver or the nameservers named by HNSBRIDGE_CONFIG.
"""

from __future__ import annotations

import os

from .config.config_parser import load_config
from .lookup import DnsLookup
from .relay import create_relay_app

_config = load_config(os.environ.get("HNSBRIDGE_CONFIG") or None)
_lookup = DnsLookup(
    _config.relay.nameservers or None,
    port=_config.relay.dns_port,
    lifetime=_config.relay.lifetime,
)
app = create_relay_app(_lookup)
