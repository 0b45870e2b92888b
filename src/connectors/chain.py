from __future__ import annotations

import requests
from web3 import Web3
from web3.exceptions import Web3Exception

from src.core.errors import ChainMismatch, SourceUnavailable


def connect(rpc_url: str, expected_chain_id: int, timeout_seconds: float = 10.0) -> Web3:
    """Open an HTTP provider and confirm it serves the configured network."""

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))

    try:
        actual = int(w3.eth.chain_id)
    except (Web3Exception, requests.RequestException, ValueError, OSError) as e:
        raise SourceUnavailable("rpc", f"failed to get chain ID from {rpc_url}: {e}") from e

    if actual != expected_chain_id:
        raise ChainMismatch(expected=expected_chain_id, actual=actual)

    return w3
