"""Typed shapes for the telemetry commands the exporter issues.

Every response is a JSON object whose single top-level key is the command
path. The set of commands is fixed, so each shape is its own dataclass that
knows its path and how to validate its payload.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, ClassVar, TypeVar, Union

from .errors import DecodeError

GRAPH_NODE_KEY = "Node_0_to_255"


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _is_number(v: Any) -> bool:
    return isinstance(v, (int, float)) and not isinstance(v, bool)


def _int_mapping(path: str, value: Any) -> dict[str, int]:
    if not isinstance(value, dict):
        raise DecodeError(path, f"expected object, got {type(value).__name__}")
    out: dict[str, int] = {}
    for k, v in value.items():
        if not _is_int(v):
            raise DecodeError(path, f"{k!r} is not an integer: {v!r}")
        out[k] = v
    return out


def _float_mapping(path: str, value: Any) -> dict[str, float]:
    if not isinstance(value, dict):
        raise DecodeError(path, f"expected object, got {type(value).__name__}")
    out: dict[str, float] = {}
    for k, v in value.items():
        if not _is_number(v):
            raise DecodeError(path, f"{k!r} is not a number: {v!r}")
        out[k] = float(v)
    return out


@dataclass(frozen=True)
class EthdevList:
    PATH: ClassVar[str] = "/ethdev/list"

    ids: tuple[int, ...] = ()

    @classmethod
    def from_payload(cls, value: Any) -> "EthdevList":
        if not isinstance(value, list):
            raise DecodeError(cls.PATH, f"expected array, got {type(value).__name__}")
        for v in value:
            if not _is_int(v):
                raise DecodeError(cls.PATH, f"port id is not an integer: {v!r}")
        return cls(ids=tuple(value))

    def to_payload(self) -> list[int]:
        return list(self.ids)


@dataclass(frozen=True)
class EthdevInfo:
    PATH: ClassVar[str] = "/ethdev/info"

    name: str = ""

    @classmethod
    def from_payload(cls, value: Any) -> "EthdevInfo":
        if not isinstance(value, dict):
            raise DecodeError(cls.PATH, f"expected object, got {type(value).__name__}")
        name = value.get("name")
        if not isinstance(name, str):
            raise DecodeError(cls.PATH, f"missing or non-string name: {name!r}")
        return cls(name=name)

    def to_payload(self) -> dict[str, Any]:
        return {"name": self.name}


@dataclass(frozen=True)
class EthdevXstats:
    PATH: ClassVar[str] = "/ethdev/xstats"

    stats: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, value: Any) -> "EthdevXstats":
        return cls(stats=_float_mapping(cls.PATH, value))

    def to_payload(self) -> dict[str, float]:
        return dict(self.stats)


@dataclass(frozen=True)
class NatPortUsage:
    PATH: ClassVar[str] = "/dp_service/nat/used_port_count"
    STAT_NAME: ClassVar[str] = "nat_used_port_count"

    ports: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, value: Any) -> "NatPortUsage":
        return cls(ports=_int_mapping(cls.PATH, value))

    def to_payload(self) -> dict[str, int]:
        return dict(self.ports)


@dataclass(frozen=True)
class VirtsvcPortUsage:
    PATH: ClassVar[str] = "/dp_service/virtsvc/used_port_count"
    STAT_NAME: ClassVar[str] = "virtsvc_used_port_count"

    ports: dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, value: Any) -> "VirtsvcPortUsage":
        return cls(ports=_int_mapping(cls.PATH, value))

    def to_payload(self) -> dict[str, int]:
        return dict(self.ports)


@dataclass(frozen=True)
class GraphCallCount:
    PATH: ClassVar[str] = "/dp_service/graph/call_count"

    nodes: dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, value: Any) -> "GraphCallCount":
        if not isinstance(value, dict):
            raise DecodeError(cls.PATH, f"expected object, got {type(value).__name__}")
        # The engine omits the node table before the graph has run once.
        return cls(nodes=_float_mapping(cls.PATH, value.get(GRAPH_NODE_KEY, {})))

    def to_payload(self) -> dict[str, Any]:
        return {GRAPH_NODE_KEY: dict(self.nodes)}


Response = Union[EthdevList, EthdevInfo, EthdevXstats, NatPortUsage, VirtsvcPortUsage, GraphCallCount]

R = TypeVar("R")


def decode(raw: bytes, shape: type[R]) -> R:
    path: str = shape.PATH  # type: ignore[attr-defined]
    try:
        doc = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise DecodeError(path, f"malformed JSON: {e}") from e
    if not isinstance(doc, dict):
        raise DecodeError(path, f"expected object, got {type(doc).__name__}")
    if path not in doc:
        raise DecodeError(path, f"missing key {path!r} (got {sorted(doc)!r})")
    return shape.from_payload(doc[path])  # type: ignore[attr-defined]


def encode(record: Response) -> bytes:
    return json.dumps({record.PATH: record.to_payload()}).encode("utf-8")


def ethdev_info_command(port_id: int) -> str:
    return f"{EthdevInfo.PATH},{port_id}"


def ethdev_xstats_command(port_id: int) -> str:
    return f"{EthdevXstats.PATH},{port_id}"
