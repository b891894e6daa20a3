import pytest

from hostname_discovery.config.config_loader import DiscoveryConfig
from hostname_discovery.core.coordinator import LIMITED_BROADCAST, DiscoveryCoordinator
from hostname_discovery.core.data_models import (
    DecodedName,
    Finding,
    ProbeStatistics,
    Protocol,
    ScanStatus,
)
from hostname_discovery.utils.error_handler import (
    ConfigurationError,
    ProbeError,
    SessionFailure,
    ValidationError,
)


class StubProber:
    def __init__(self, protocol, findings=(), error=None):
        self.protocol = protocol
        self.findings = list(findings)
        self.error = error
        self.statistics = ProbeStatistics()
        self.calls = []

    def probe(self, targets, deadline, explicit=False):
        self.calls.append((list(targets), explicit))
        for finding in self.findings:
            self.statistics.names_reported += 1
            yield finding
        if self.error:
            raise self.error


class StubDetector:
    def __init__(self, network_info=None, candidates=(), error=None):
        self.network_info = network_info
        self.candidates = list(candidates)
        self.error = error
        self.calls = 0

    def get_host_network_info(self, interface=None):
        self.calls += 1
        if self.error:
            raise self.error
        return self.network_info

    def candidate_hosts(self, network_info, limit):
        return self.candidates[:limit]


def nbns_finding(address, name, suffix=0x00):
    return Finding(address, DecodedName(name, suffix, Protocol.NBNS, 0x0400))


def mdns_finding(address, name):
    return Finding(address, DecodedName(name, 1, Protocol.MDNS, address=address))


@pytest.fixture
def detector(network_info):
    return StubDetector(network_info, ["192.168.1.10", "192.168.1.20"])


def run(probers, detector, quiet_logger, **config):
    config.setdefault("timeout", 0.5)
    coordinator = DiscoveryCoordinator(
        DiscoveryConfig(**config), logger=quiet_logger,
        network_detector=detector, probers={p.protocol: p for p in probers},
    )
    return coordinator.discover()


def test_nbns_failing_mdns_succeeding_is_partial(detector, quiet_logger):
    nbns = StubProber(Protocol.NBNS, error=ProbeError("bind failed", Protocol.NBNS))
    mdns = StubProber(Protocol.MDNS, [mdns_finding("192.168.1.20", "laptop.local")])

    session = run([nbns, mdns], detector, quiet_logger)

    assert session.status == ScanStatus.PARTIAL
    assert len(session) == 1
    assert session.get("192.168.1.20").names_for(Protocol.MDNS) == ["laptop.local"]
    assert [e.protocol for e in session.errors] == [Protocol.NBNS]


def test_both_silent_is_empty_and_not_failing(detector, quiet_logger):
    session = run([StubProber(Protocol.NBNS), StubProber(Protocol.MDNS)], detector, quiet_logger)

    assert session.status == ScanStatus.COMPLETED
    assert len(session) == 0
    assert session.errors == ()
    assert session.frozen


def test_both_failing_raises_session_failure(detector, quiet_logger):
    probers = [
        StubProber(Protocol.NBNS, error=ProbeError("bind failed", Protocol.NBNS)),
        StubProber(Protocol.MDNS, error=ProbeError("join failed", Protocol.MDNS)),
    ]
    with pytest.raises(SessionFailure) as excinfo:
        run(probers, detector, quiet_logger)
    assert {e.protocol for e in excinfo.value.errors} == {Protocol.NBNS, Protocol.MDNS}


def test_single_enabled_prober_failing_raises(detector, quiet_logger):
    nbns = StubProber(Protocol.NBNS, error=ProbeError("bind failed", Protocol.NBNS))
    with pytest.raises(SessionFailure):
        run([nbns], detector, quiet_logger, protocols=["nbns"])


def test_host_answering_both_protocols_is_merged(detector, quiet_logger):
    nbns = StubProber(Protocol.NBNS, [nbns_finding("192.168.1.30", "HOST")])
    mdns = StubProber(Protocol.MDNS, [mdns_finding("192.168.1.30", "host.local")])

    session = run([nbns, mdns], detector, quiet_logger)

    assert len(session) == 1
    assert session.get("192.168.1.30").name_set == {
        ("HOST", Protocol.NBNS),
        ("host.local", Protocol.MDNS),
    }


def test_printer_scenario(detector, quiet_logger):
    nbns = StubProber(Protocol.NBNS, [nbns_finding("192.168.1.10", "PRINTER1", 0x20)])
    session = run([nbns, StubProber(Protocol.MDNS)], detector, quiet_logger)

    record = session.get("192.168.1.10")
    assert [(n.name, n.suffix) for n in record.names] == [("PRINTER1", 0x20)]


def test_unexpected_prober_crash_is_recorded(detector, quiet_logger):
    nbns = StubProber(Protocol.NBNS, error=ValueError("boom"))
    mdns = StubProber(Protocol.MDNS, [mdns_finding("192.168.1.20", "laptop.local")])

    session = run([nbns, mdns], detector, quiet_logger)

    assert session.status == ScanStatus.PARTIAL
    assert "boom" in str(session.errors[0])


def test_statistics_collected_per_protocol(detector, quiet_logger):
    mdns = StubProber(Protocol.MDNS, [mdns_finding("192.168.1.20", "laptop.local")])
    session = run([StubProber(Protocol.NBNS), mdns], detector, quiet_logger)

    assert set(session.statistics) == {Protocol.NBNS, Protocol.MDNS}
    assert session.statistics[Protocol.MDNS].names_reported == 1


def test_default_targets_come_from_detected_network(detector, quiet_logger):
    nbns, mdns = StubProber(Protocol.NBNS), StubProber(Protocol.MDNS)
    run([nbns, mdns], detector, quiet_logger)

    assert nbns.calls == [(["192.168.1.255"], False)]
    assert mdns.calls == [(["192.168.1.10", "192.168.1.20"], False)]


def test_detection_failure_falls_back_to_limited_broadcast(quiet_logger):
    detector = StubDetector(error=RuntimeError("no route"))
    nbns, mdns = StubProber(Protocol.NBNS), StubProber(Protocol.MDNS)
    run([nbns, mdns], detector, quiet_logger)

    assert nbns.calls == [([LIMITED_BROADCAST], False)]
    assert mdns.calls == [([], False)]


def test_explicit_targets_skip_detection(detector, quiet_logger):
    nbns, mdns = StubProber(Protocol.NBNS), StubProber(Protocol.MDNS)
    run([nbns, mdns], detector, quiet_logger, targets=["192.168.1.0/30", "fe80::1"])

    assert detector.calls == 0
    assert nbns.calls == [(["192.168.1.1", "192.168.1.2"], True)]
    assert mdns.calls == [(["192.168.1.1", "192.168.1.2", "fe80::1"], True)]


def test_disabled_protocol_is_not_probed(detector, quiet_logger):
    nbns, mdns = StubProber(Protocol.NBNS), StubProber(Protocol.MDNS)
    session = run([nbns, mdns], detector, quiet_logger, protocols=["mdns"])

    assert nbns.calls == []
    assert len(mdns.calls) == 1
    assert set(session.statistics) == {Protocol.MDNS}


def test_non_positive_timeout_is_rejected(detector, quiet_logger):
    with pytest.raises(ConfigurationError):
        run([StubProber(Protocol.NBNS)], detector, quiet_logger, timeout=0)


def test_too_many_targets_is_rejected(detector, quiet_logger):
    with pytest.raises(ValidationError):
        run([StubProber(Protocol.NBNS)], detector, quiet_logger,
            targets=["10.0.0.0/16"], max_targets=100)
