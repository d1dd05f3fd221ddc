"""
Tests for verification classification and per-avatar trust counting.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from circles_registry.core.exceptions import RemoteQueryError
from circles_registry.trust.classifier import VERIFICATION_THRESHOLD, classify
from circles_registry.trust.counter import TrustCounter, TrustCounts

from conftest import addr


@pytest.mark.parametrize("count", [0, 1, 2, 3, 4, 50])
def test_classify_threshold(count):
    v = classify(count)
    assert v.verified == (count >= VERIFICATION_THRESHOLD)
    assert v.status == ("verified" if v.verified else "registered")
    assert v.needed_trusts == max(0, VERIFICATION_THRESHOLD - count)


def test_classify_is_idempotent():
    assert classify(2) == classify(2)
    assert classify(7, threshold=5) == classify(7, threshold=5)


def test_classify_custom_threshold():
    assert classify(4, threshold=5).needed_trusts == 1
    assert classify(5, threshold=5).verified is True


def test_classify_rejects_negative():
    with pytest.raises(ValueError):
        classify(-1)


def test_count_trusts_both_directions(endpoint, query_client):
    me = addr(1)
    endpoint.set_incoming(me, 4)
    endpoint.add_trust(me, addr(2))
    counts = TrustCounter(query_client).count_trusts(me)
    assert counts == TrustCounts(incoming=4, outgoing=1)


def test_self_trust_never_counts(endpoint, query_client):
    me = addr(1)
    endpoint.add_trust(me, me)
    endpoint.add_trust(addr(2), me)
    counts = TrustCounter(query_client).count_trusts(me)
    assert counts.incoming == 1
    assert counts.outgoing == 0


def test_self_trust_is_case_insensitive(endpoint, query_client):
    me = "0x" + "ab" * 20
    endpoint.add_trust(me.upper().replace("0X", "0x"), me)
    counts = TrustCounter(query_client).count_trusts(me)
    assert counts.incoming == 0


def test_count_failure_degrades_to_zero(query_client):
    with patch.object(query_client, "fetch_trust_relations", side_effect=RemoteQueryError("down")):
        counts = TrustCounter(query_client).count_trusts(addr(1))
    assert counts == TrustCounts(0, 0)


def test_count_capped_at_limit_logs_warning(endpoint, query_client):
    me = addr(1)
    endpoint.set_incoming(me, 5)
    with patch("circles_registry.trust.counter.bind_address") as bind:
        counts = TrustCounter(query_client, limit=2).count_trusts(me)
    assert counts.incoming == 2
    warned = [c.args[0] for c in bind.return_value.warning.call_args_list]
    assert "trust_count_capped" in warned
