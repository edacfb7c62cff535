from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Optional

from .client import TelemetryClient
from .metrics import ExporterMetrics
from .responses import (
    EthdevInfo,
    EthdevList,
    EthdevXstats,
    GraphCallCount,
    NatPortUsage,
    VirtsvcPortUsage,
    ethdev_info_command,
    ethdev_xstats_command,
)

logger = logging.getLogger(__name__)


@dataclass
class PollStats:
    interfaces: int = 0
    series: int = 0
    duration_s: float = 0.0


class TelemetryPoller:
    def __init__(
        self,
        client: TelemetryClient,
        metrics: ExporterMetrics,
        host_label: str,
        include_virtsvc: bool = True,
    ):
        self._client = client
        self._metrics = metrics
        self._host_label = host_label
        self._include_virtsvc = include_virtsvc
        self._polling = False

    @property
    def polling(self) -> bool:
        return self._polling

    def poll_once(self) -> PollStats:
        """Run one cycle of queries and upsert every value into the gauges.

        Any telemetry error propagates. Values set earlier in the cycle stay
        as they are.
        """
        self._polling = True
        started = time.monotonic()
        stats = PollStats()
        try:
            ports = self._client.query(EthdevList.PATH, EthdevList)
            for port_id in ports.ids:
                info = self._client.query(ethdev_info_command(port_id), EthdevInfo)
                xstats = self._client.query(ethdev_xstats_command(port_id), EthdevXstats)
                for stat_name, value in xstats.stats.items():
                    self._metrics.set_interface_stat(info.name, stat_name, value)
                stats.interfaces += 1
                stats.series += len(xstats.stats)

            usages: list[type] = [NatPortUsage]
            if self._include_virtsvc:
                usages.append(VirtsvcPortUsage)
            for shape in usages:
                usage = self._client.query(shape.PATH, shape)
                for ifname, count in usage.ports.items():
                    self._metrics.set_interface_stat(ifname, shape.STAT_NAME, float(count))
                stats.series += len(usage.ports)

            calls = self._client.query(GraphCallCount.PATH, GraphCallCount)
            for graph_node, count in calls.nodes.items():
                self._metrics.set_graph_stat(self._host_label, graph_node, count)
            stats.series += len(calls.nodes)
        finally:
            self._polling = False

        stats.duration_s = time.monotonic() - started
        logger.debug(
            "Polled %d interfaces, %d series in %.3fs",
            stats.interfaces,
            stats.series,
            stats.duration_s,
        )
        return stats

    def run(self, interval_s: float, stop: Optional[threading.Event] = None) -> None:
        stop = stop or threading.Event()
        while not stop.is_set():
            self.poll_once()
            stop.wait(max(0.05, interval_s))
