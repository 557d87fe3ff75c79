"""
Tests for priority-ordered tier resolution.
"""
import pytest

from livemetro.errors import ChainExhausted, TierFailure
from livemetro.tiers import TierChain, TierDescriptor


def failing(message):
    def fetch(key):
        raise RuntimeError(message)
    return fetch


def test_tiers_are_tried_in_priority_order():
    calls = []

    def tier(name, value):
        def fetch(key):
            calls.append(name)
            return value
        return fetch

    chain = TierChain([
        TierDescriptor("secondary", tier("secondary", "s"), priority=1),
        TierDescriptor("primary", tier("primary", "p"), priority=0),
    ])
    result = chain.resolve("Gangnam")

    assert result.value == "p"
    assert result.tier == "primary"
    assert calls == ["primary"]
    assert chain.tier_names == ["primary", "secondary"]


def test_falls_back_and_reports_earlier_failures():
    chain = TierChain([
        TierDescriptor("primary", failing("timeout"), priority=0),
        TierDescriptor("secondary", lambda key: ["train"], priority=1),
    ])
    result = chain.resolve("Gangnam")

    assert result.tier == "secondary"
    assert result.value == ["train"]
    assert [f.tier for f in result.failures] == ["primary"]
    assert result.failures[0].message == "timeout"


def test_empty_value_is_a_success():
    chain = TierChain([TierDescriptor("primary", lambda key: [], priority=0)])
    assert chain.resolve("Gangnam").value == []


def test_none_means_not_found():
    chain = TierChain([
        TierDescriptor("primary", lambda key: None, priority=0),
        TierDescriptor("secondary", lambda key: "found", priority=1),
    ])
    result = chain.resolve("Gangnam")
    assert result.tier == "secondary"
    assert result.failures[0].message == "no data"


def test_exhausted_carries_every_failure():
    def explicit(key):
        raise TierFailure("secondary", "replica timed out")

    chain = TierChain([
        TierDescriptor("primary", failing("HTTP 500"), priority=0),
        TierDescriptor("secondary", explicit, priority=1),
        TierDescriptor("cache", lambda key: None, priority=2),
    ])
    with pytest.raises(ChainExhausted) as exc_info:
        chain.resolve("Gangnam")

    exc = exc_info.value
    assert exc.key == "Gangnam"
    assert [f.tier for f in exc.failures] == ["primary", "secondary", "cache"]
    assert "HTTP 500" in str(exc)
    assert "replica timed out" in str(exc)


def test_empty_chain_is_exhausted():
    with pytest.raises(ChainExhausted):
        TierChain([]).resolve("Gangnam")
