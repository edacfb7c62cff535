from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Gauge, generate_latest

INTERFACE_STAT = "dpdk_interface_stat"
GRAPH_STAT = "dpdk_graph_stat"


class ExporterMetrics:
    """The two gauge families the exporter publishes, bound to one registry.

    Series are only ever overwritten; label sets from interfaces or graph
    nodes that disappear keep their last value until the process restarts.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        self._registry = registry or CollectorRegistry()
        self._interface_stat = Gauge(
            INTERFACE_STAT,
            "DPDK interface statistic",
            labelnames=("interface", "stat_name"),
            registry=self._registry,
        )
        self._graph_stat = Gauge(
            GRAPH_STAT,
            "Dp-Service graph statistics",
            labelnames=("node_name", "graph_node"),
            registry=self._registry,
        )

    @property
    def registry(self) -> CollectorRegistry:
        return self._registry

    def set_interface_stat(self, interface: str, stat_name: str, value: float) -> None:
        self._interface_stat.labels(interface=interface, stat_name=stat_name).set(value)

    def set_graph_stat(self, node_name: str, graph_node: str, value: float) -> None:
        self._graph_stat.labels(node_name=node_name, graph_node=graph_node).set(value)

    def interface_stat(self, interface: str, stat_name: str) -> Optional[float]:
        return self._registry.get_sample_value(
            INTERFACE_STAT, {"interface": interface, "stat_name": stat_name}
        )

    def graph_stat(self, node_name: str, graph_node: str) -> Optional[float]:
        return self._registry.get_sample_value(
            GRAPH_STAT, {"node_name": node_name, "graph_node": graph_node}
        )

    def samples(self) -> list[tuple[str, dict[str, str], float]]:
        out = []
        for family in self._registry.collect():
            for s in family.samples:
                out.append((s.name, dict(s.labels), s.value))
        return out

    def render(self) -> bytes:
        return generate_latest(self._registry)


__all__ = ["ExporterMetrics", "GRAPH_STAT", "INTERFACE_STAT"]
