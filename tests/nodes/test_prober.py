import pytest

from terranix.errors import TransportError, Unreachable
from terranix.nodes.prober import Prober
from terranix.state.models import Node
import terranix.utils.retry as retry_mod


class FlakyTransport:
    """Fails the first `failures` runs, then answers the no-op."""

    def __init__(self, failures=0, rc=0):
        self.failures = failures
        self.rc = rc
        self.calls = []

    def run(self, node, cmd, *, stdin=None, timeout=None):
        self.calls.append((node.name, cmd))
        if len(self.calls) <= self.failures:
            raise TransportError("connection refused")
        return self.rc, "", ""

    def copy_closure(self, node, path):
        raise AssertionError("not used")


@pytest.fixture
def sleeps(monkeypatch):
    slept = []
    monkeypatch.setattr(retry_mod.time, "sleep", lambda s: slept.append(s))
    return slept


NODE = Node(name="a", ip="10.0.0.1", provider="libvirt", ssh_key="K")


def test_up_on_first_attempt(sleeps):
    t = FlakyTransport()
    assert Prober(t).check_up(NODE) == 1
    assert t.calls == [("a", "true")]
    assert sleeps == []


def test_up_after_retries_with_fixed_delay(sleeps):
    t = FlakyTransport(failures=2)
    assert Prober(t).check_up(NODE) == 3
    assert sleeps == [5.0, 5.0]


def test_unreachable_after_three_attempts(sleeps, caplog):
    t = FlakyTransport(failures=10)
    with caplog.at_level("INFO", logger="terranix"):
        with pytest.raises(Unreachable, match="after 3 attempts"):
            Prober(t).check_up(NODE)
    assert len(t.calls) == 3
    assert sleeps == [5.0, 5.0]
    retries = [r for r in caplog.records if "retrying" in r.getMessage()]
    assert len(retries) == 2


def test_nonzero_noop_counts_as_failure(sleeps):
    t = FlakyTransport(rc=255)
    with pytest.raises(Unreachable):
        Prober(t, attempts=2, delay=0).check_up(NODE)
    assert len(t.calls) == 2


def test_node_without_ip_is_unreachable_without_contact(sleeps):
    t = FlakyTransport()
    with pytest.raises(Unreachable, match="no ip"):
        Prober(t).check_up(Node(name="b", ip="", provider="aws", ssh_key="K2"))
    assert t.calls == []
