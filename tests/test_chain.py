from types import SimpleNamespace

import pytest
import requests

from src.connectors import chain
from src.core.errors import ChainMismatch, SourceUnavailable


class _ChainIdRaises:
    @property
    def chain_id(self) -> int:
        raise requests.exceptions.ConnectionError("refused")


def _stub_web3(eth):
    class StubWeb3:
        providers = []

        @staticmethod
        def HTTPProvider(url, request_kwargs=None):
            StubWeb3.providers.append((url, request_kwargs))
            return url

        def __init__(self, provider):
            self.eth = eth

    return StubWeb3


def test_connect_returns_web3_when_chain_matches(monkeypatch) -> None:
    stub = _stub_web3(SimpleNamespace(chain_id=137))
    monkeypatch.setattr(chain, "Web3", stub)

    w3 = chain.connect("https://polygon-rpc.example", 137, timeout_seconds=3.0)

    assert w3.eth.chain_id == 137
    assert stub.providers == [("https://polygon-rpc.example", {"timeout": 3.0})]


def test_connect_raises_chain_mismatch(monkeypatch) -> None:
    monkeypatch.setattr(chain, "Web3", _stub_web3(SimpleNamespace(chain_id=1)))

    with pytest.raises(ChainMismatch) as exc_info:
        chain.connect("https://mainnet.example", 137)

    assert exc_info.value.expected == 137
    assert exc_info.value.actual == 1


def test_unreachable_rpc_is_reported(monkeypatch) -> None:
    monkeypatch.setattr(chain, "Web3", _stub_web3(_ChainIdRaises()))

    with pytest.raises(SourceUnavailable):
        chain.connect("https://down.example", 137)
