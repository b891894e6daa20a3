"""
Discovery Coordinator for Hostname Discovery Module.

This module provides the DiscoveryCoordinator class that runs the NBNS and
mDNS probers concurrently against one shared deadline, merges their findings
by IP address into a DiscoverySession and decides the session status.
"""

import queue
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from .data_models import DiscoverySession, NetworkInfo, Protocol, ScanStatus
from .network_detector import NetworkDetector
from ..config.config_loader import DiscoveryConfig, check_timeout
from ..probers.base_prober import BaseProber
from ..probers.mdns_prober import MDNSProber
from ..probers.nbns_prober import NBNSProber
from ..utils.error_handler import (
    ConfigurationError, ErrorHandler, ProbeError, SessionFailure
)
from ..utils.logger import Logger, get_logger
from ..utils.network_utils import expand_targets

LIMITED_BROADCAST = "255.255.255.255"

# Extra time granted to prober threads after the deadline to report "done"
PROBER_GRACE_SECONDS = 0.5


@dataclass
class TargetPlan:
    """
    Addresses each prober will query.

    Attributes:
        targets: Addresses per protocol
        explicit: True when the addresses came from the caller
        network_info: Detected network, if detection ran
    """
    targets: Dict[Protocol, List[str]] = field(default_factory=dict)
    explicit: bool = False
    network_info: Optional[NetworkInfo] = None


class DiscoveryCoordinator:
    """
    Runs the enabled probers and owns the host table.

    Prober threads only push messages onto a queue; the thread calling
    discover() is the single consumer and the only writer of the session.
    """

    def __init__(self, config: Optional[DiscoveryConfig] = None,
                 logger: Optional[Logger] = None,
                 error_handler: Optional[ErrorHandler] = None,
                 network_detector: Optional[NetworkDetector] = None,
                 probers: Optional[Dict[Protocol, BaseProber]] = None):
        """
        Initialize the coordinator.

        Args:
            config: Default configuration for discover()
            logger: Logger instance
            error_handler: ErrorHandler shared with the probers
            network_detector: Detector used when no explicit targets are given
            probers: Ready-made probers keyed by protocol; built from the
                configuration when omitted
        """
        self.config = config or DiscoveryConfig()
        self.logger = logger or get_logger(__name__)
        self.error_handler = error_handler or ErrorHandler(self.logger)
        self.network_detector = network_detector or NetworkDetector(self.logger)
        self._probers = probers

    def discover(self, config: Optional[DiscoveryConfig] = None) -> DiscoverySession:
        """
        Run one discovery pass.

        Args:
            config: Configuration for this pass, the coordinator's own when None

        Returns:
            Frozen DiscoverySession; empty when nobody answered

        Raises:
            ConfigurationError: If the timeout is not positive
            ValidationError: If explicit targets are invalid or too many
            SessionFailure: If every enabled prober failed and no host was found
        """
        config = config or self.config
        timeout = check_timeout(config.timeout, self.logger)
        protocols = [Protocol(name) for name in config.protocols]
        if not protocols:
            protocols = list(Protocol)

        plan = self.plan_targets(config, protocols)
        probers = self._build_probers(config, protocols, plan.network_info)
        if not probers:
            raise ConfigurationError("No prober is enabled")

        if plan.network_info:
            self.logger.probe_plan(plan.network_info.interface_name, plan.network_info.host_ip,
                                   [p.value for p in probers], timeout)

        deadline = time.monotonic() + timeout
        session = DiscoverySession(deadline)
        session.status = ScanStatus.IN_PROGRESS
        messages: "queue.Queue" = queue.Queue()

        self.logger.progress_start(f"Probing {', '.join(p.value.upper() for p in probers)} for {timeout:.1f}s")
        executor = ThreadPoolExecutor(max_workers=len(probers), thread_name_prefix="prober")
        try:
            for protocol, prober in probers.items():
                executor.submit(self._run_prober, prober, plan.targets.get(protocol, []),
                                deadline, plan.explicit, messages)
            unfinished = self._consume(session, messages, set(probers),
                                       deadline + PROBER_GRACE_SECONDS)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        return self._finish(session, set(probers), unfinished)

    def plan_targets(self, config: DiscoveryConfig, protocols: List[Protocol]) -> TargetPlan:
        """
        Decide which addresses each prober queries.

        Explicit targets are expanded and shared by both probers (NBNS only
        takes IPv4). Without them NBNS queries the subnet broadcast address
        and mDNS asks for the reverse names of every subnet host.

        Args:
            config: Discovery configuration
            protocols: Enabled protocols

        Returns:
            TargetPlan
        """
        plan = TargetPlan()

        if config.interface or not config.targets:
            try:
                plan.network_info = self.network_detector.get_host_network_info(config.interface)
            except RuntimeError as e:
                self.logger.warning(f"{e}; falling back to the limited broadcast address")

        if config.targets:
            addresses = [str(address) for address in expand_targets(config.targets, config.max_targets)]
            plan.explicit = True
            if Protocol.NBNS in protocols:
                ipv4 = [address for address in addresses if ':' not in address]
                if len(ipv4) < len(addresses):
                    self.logger.warning("NBNS is IPv4 only; IPv6 targets are skipped for NBNS")
                plan.targets[Protocol.NBNS] = ipv4
            if Protocol.MDNS in protocols:
                plan.targets[Protocol.MDNS] = addresses
            return plan

        info = plan.network_info
        if Protocol.NBNS in protocols:
            plan.targets[Protocol.NBNS] = [info.broadcast_address if info else LIMITED_BROADCAST]
        if Protocol.MDNS in protocols:
            plan.targets[Protocol.MDNS] = (
                self.network_detector.candidate_hosts(info, config.max_targets) if info else []
            )
        return plan

    def _build_probers(self, config: DiscoveryConfig, protocols: List[Protocol],
                       network_info: Optional[NetworkInfo]) -> Dict[Protocol, BaseProber]:
        if self._probers is not None:
            return {p: prober for p, prober in self._probers.items() if p in protocols}

        interface_address = network_info.host_ip if network_info and config.interface else None
        probers: Dict[Protocol, BaseProber] = {}
        if Protocol.NBNS in protocols:
            probers[Protocol.NBNS] = NBNSProber(
                config.nbns, bind_address=interface_address or "",
                logger=self.logger, error_handler=self.error_handler,
            )
        if Protocol.MDNS in protocols:
            probers[Protocol.MDNS] = MDNSProber(
                config.mdns, interface_address=interface_address,
                interface_name=config.interface,
                logger=self.logger, error_handler=self.error_handler,
            )
        return probers

    def _run_prober(self, prober: BaseProber, targets: List[str], deadline: float,
                    explicit: bool, messages: "queue.Queue") -> None:
        """Worker body: forward one prober's findings and outcome to the queue."""
        protocol = prober.protocol
        try:
            for finding in prober.probe(targets, deadline, explicit=explicit):
                messages.put(("finding", protocol, finding))
        except ProbeError as e:
            messages.put(("error", protocol, e))
        except Exception as e:
            self.logger.error(f"{type(prober).__name__} crashed", exception=e)
            messages.put(("error", protocol, ProbeError(f"Unexpected failure: {e}", protocol)))
        finally:
            messages.put(("done", protocol, prober.statistics))

    def _consume(self, session: DiscoverySession, messages: "queue.Queue",
                 pending: Set[Protocol], hard_deadline: float) -> Set[Protocol]:
        """
        Merge queued messages into the session until every prober is done.

        Returns:
            Protocols whose prober had not finished by the hard deadline
        """
        pending = set(pending)
        while pending:
            remaining = hard_deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                kind, protocol, payload = messages.get(timeout=remaining)
            except queue.Empty:
                break

            if kind == "finding":
                if session.add_finding(payload):
                    decoded = payload.decoded
                    self.logger.debug(
                        f"{payload.address}: {decoded.name} via {protocol.value.upper()}"
                    )
            elif kind == "error":
                session.record_error(payload)
                self.logger.warning(f"Prober failed: {payload}")
            else:
                pending.discard(protocol)
                session.statistics[protocol] = payload
        return pending

    def _finish(self, session: DiscoverySession, enabled: Set[Protocol],
                unfinished: Set[Protocol]) -> DiscoverySession:
        failed = {error.protocol for error in session.errors}

        if unfinished:
            self.logger.warning(
                f"Probers still running past the deadline: {', '.join(p.value for p in unfinished)}"
            )

        if failed >= enabled and len(session) == 0:
            session.freeze(ScanStatus.FAILED)
            self.logger.progress_end()
            raise SessionFailure(
                f"All enabled probers failed: {'; '.join(str(e) for e in session.errors)}",
                list(session.errors),
            )

        status = ScanStatus.PARTIAL if failed or unfinished else ScanStatus.COMPLETED
        session.freeze(status)
        self.logger.progress_end(
            f"Discovery finished: {len(session)} "
            f"{'host' if len(session) == 1 else 'hosts'} in {session.duration:.1f}s"
        )
        return session


def discover(config: Optional[DiscoveryConfig] = None) -> DiscoverySession:
    """
    Run one discovery pass with a default coordinator.

    Args:
        config: Discovery configuration, defaults when None

    Returns:
        Frozen DiscoverySession
    """
    return DiscoveryCoordinator(config).discover()
