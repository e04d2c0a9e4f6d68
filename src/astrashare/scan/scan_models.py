# src/astrashare/scan/scan_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from types import MappingProxyType
from typing import Any, Mapping


class ScanState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(slots=True, frozen=True)
class ScanMatch:
    code: str
    name: str
    base_date: str
    signal_date: str
    details: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_wire(cls, data: Any) -> ScanMatch:
        if not isinstance(data, dict):
            raise ValueError("match frame without stock object")
        details = data.get("details")
        return cls(
            code=str(data.get("code") or ""),
            name=str(data.get("name") or ""),
            base_date=str(data.get("base_date") or ""),
            signal_date=str(data.get("signal_date") or ""),
            details=MappingProxyType(dict(details) if isinstance(details, dict) else {}),
        )


@dataclass(slots=True, frozen=True)
class ScanProgress:
    current: int = 0
    total: int = 0

    def __str__(self) -> str:
        return f"{self.current}/{self.total}"


@dataclass(slots=True, frozen=True)
class PatternParam:
    name: str
    label: str
    type: str
    default: Any = None
    min_value: float | None = None
    max_value: float | None = None
    description: str = ""


@dataclass(slots=True, frozen=True)
class ScanPattern:
    name: str
    display_name: str
    description: str = ""
    category: str = ""
    params: tuple[PatternParam, ...] = ()

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> ScanPattern:
        params = []
        for p in data.get("params") or []:
            if not isinstance(p, dict) or not p.get("name"):
                continue
            params.append(
                PatternParam(
                    name=str(p["name"]),
                    label=str(p.get("label") or p["name"]),
                    type=str(p.get("type") or ""),
                    default=p.get("default"),
                    min_value=p.get("min_value"),
                    max_value=p.get("max_value"),
                    description=str(p.get("description") or ""),
                )
            )
        name = str(data.get("name") or "")
        return cls(
            name=name,
            display_name=str(data.get("display_name") or name),
            description=str(data.get("description") or ""),
            category=str(data.get("category") or ""),
            params=tuple(params),
        )
