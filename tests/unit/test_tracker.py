import pytest

from traas.engine import HopTracker, ResponseCorrelator
from traas.models import HopStatus, ProbeSocketResult
from traas.probe import FakeProbeSocket
from traas.probe.fake import encode_reply


def test_register_creates_pending_hop():
    tracker = HopTracker()
    probe = tracker.register(3, 17, sent_ns=1000)

    assert probe.ttl == 3 and probe.identifier == 17 and probe.sent_ns == 1000
    assert tracker.lookup(17) == probe
    assert tracker.get(3).status is HopStatus.PENDING
    assert tracker.pending_ttls() == [3]


def test_register_rejects_reused_identifier_and_bad_ttl():
    tracker = HopTracker()
    tracker.register(1, 1)
    with pytest.raises(ValueError):
        tracker.register(2, 1)
    with pytest.raises(ValueError):
        tracker.register(0, 2)


def test_resolve_is_idempotent():
    tracker = HopTracker()
    tracker.register(3, 1, sent_ns=0)

    first = tracker.resolve(1, "10.0.0.3", 5_000_000)
    assert first.status is HopStatus.RESPONDED
    assert first.address == "10.0.0.3"

    assert tracker.resolve(1, "10.9.9.9", 1) is None
    assert tracker.get(3) == first


def test_retry_of_resolved_ttl_is_not_overwritten():
    tracker = HopTracker()
    tracker.register(2, 1, sent_ns=0)
    tracker.register(2, 2, sent_ns=10, attempt=1)

    tracker.resolve(2, "10.0.0.2", 400)
    assert tracker.resolve(1, "10.0.0.99", 900) is None
    assert tracker.get(2).address == "10.0.0.2"
    assert tracker.get(2).latency_ns == 400


def test_final_status_never_reverts():
    tracker = HopTracker()
    tracker.register(1, 1)
    tracker.register(2, 2)

    assert tracker.mark_unreachable(1)
    assert not tracker.mark_timed_out(1)
    assert tracker.resolve(1, "10.0.0.1", 100) is None
    assert tracker.get(1).status is HopStatus.UNREACHABLE

    tracker.resolve(2, "10.0.0.2", 100)
    assert not tracker.mark_timed_out(2)
    assert tracker.get(2).status is HopStatus.RESPONDED
    assert not tracker.mark_unreachable(42)


def test_snapshot_is_ordered_and_stable():
    tracker = HopTracker()
    for identifier, ttl in enumerate([4, 1, 3, 2], start=1):
        tracker.register(ttl, identifier)

    snapshot = tracker.snapshot()
    tracker.resolve(1, "10.0.0.4", 10)

    assert [hop.ttl for hop in snapshot] == [1, 2, 3, 4]
    assert snapshot[3].status is HopStatus.PENDING


def test_correlator_routes_and_discards():
    tracker = HopTracker()
    sock = FakeProbeSocket()
    resolved = []
    correlator = ResponseCorrelator(tracker, sock, on_resolved=resolved.append)
    tracker.register(1, 5, sent_ns=1_000)

    hop = correlator.handle(ProbeSocketResult(encode_reply(5), "10.0.0.1", 3_001_000))
    assert hop.latency_ns == 3_000_000
    assert resolved == [hop]

    assert correlator.handle(ProbeSocketResult(encode_reply(5), "10.0.0.1", 9_000_000)) is None
    assert correlator.handle(ProbeSocketResult(encode_reply(77), "10.0.0.1", 0)) is None
    assert correlator.handle(ProbeSocketResult(b'garbage', "10.0.0.1", 0)) is None

    assert (correlator.matched, correlator.duplicates, correlator.unknown, correlator.unparsed) == (1, 1, 1, 1)
    assert correlator.discarded == 3
    assert tracker.get(1).latency_ns == 3_000_000
