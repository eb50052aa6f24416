"""Dataclasses for the Prospect Council debate pipeline."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


@dataclass(frozen=True)
class TranscriptEntry:
    role: str
    key: str | None
    content: str        # plain text or JSON-serialized structure
    references: tuple[dict, ...] = ()    # knowledge-base chunks cited by the answer


@dataclass
class Completion:
    answer: str
    session_id: str | None = None
    references: list[dict] = field(default_factory=list)


@dataclass
class AgentOutcome:
    """Result of one branch of a settle-all fan-out."""

    key: str
    ok: bool
    value: str | None = None     # answer text or session id
    error: str = ""


def _to_float(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _vertex(point: Any) -> tuple[float, float] | None:
    """Read a polygon vertex given as ``[lat, lng]`` or ``{"lat": .., "lng": ..}``."""
    if isinstance(point, dict):
        lat, lng = _to_float(point.get("lat")), _to_float(point.get("lng", point.get("lon")))
    elif isinstance(point, (list, tuple)) and len(point) >= 2:
        lat, lng = _to_float(point[0]), _to_float(point[1])
    else:
        return None
    if lat is None or lng is None:
        return None
    return lat, lng


def _split_known(raw: dict, known: tuple[str, ...]) -> dict:
    return {k: v for k, v in raw.items() if k not in known}


@dataclass
class DrillSite:
    id: str | None = None
    lat: float | None = None
    lng: float | None = None
    depth: Any = None
    reason: str | None = None
    extra: dict = field(default_factory=dict)

    _KNOWN = ("id", "lat", "lng", "depth", "reason")

    @classmethod
    def from_dict(cls, raw: Any) -> "DrillSite":
        if not isinstance(raw, dict):
            return cls(extra={"value": raw})
        return cls(
            id=None if raw.get("id") is None else str(raw["id"]),
            lat=_to_float(raw.get("lat")),
            lng=_to_float(raw.get("lng")),
            depth=raw.get("depth"),
            reason=raw.get("reason"),
            extra=_split_known(raw, cls._KNOWN),
        )

    def to_dict(self) -> dict:
        out = {k: getattr(self, k) for k in self._KNOWN if getattr(self, k) is not None}
        out.update(self.extra)
        return out


@dataclass
class Anomaly:
    lat: float | None = None
    lng: float | None = None
    radius: float | None = None
    value: Any = None            # magnitude / intensity
    type: str | None = None
    desc: str | None = None
    extra: dict = field(default_factory=dict)

    _KNOWN = ("lat", "lng", "radius", "value", "type", "desc")

    @classmethod
    def from_dict(cls, raw: Any) -> "Anomaly":
        if not isinstance(raw, dict):
            return cls(extra={"value": raw})
        return cls(
            lat=_to_float(raw.get("lat")),
            lng=_to_float(raw.get("lng")),
            radius=_to_float(raw.get("radius")),
            value=raw.get("value"),
            type=raw.get("type"),
            desc=raw.get("desc"),
            extra=_split_known(raw, cls._KNOWN),
        )

    @property
    def label(self) -> str:
        return self.type or str(self.extra.get("element") or "unknown")

    def to_dict(self) -> dict:
        out = {k: getattr(self, k) for k in self._KNOWN if getattr(self, k) is not None}
        out.update(self.extra)
        return out


@dataclass
class ReportPayload:
    """Structured conclusion of a debate. Every field is optional.

    Unknown top-level fields are kept in ``extra`` so ``to_dict()`` never
    drops anything the host sent. ``target_area`` holds the vertices exactly
    as received; ``polygon`` is the readable subset as ``(lat, lng)`` pairs.
    """

    probability: Any = None
    favorable_zone: str | None = None
    rationale: str | None = None
    target_area: list = field(default_factory=list)
    drill_sites: list[DrillSite] = field(default_factory=list)
    geo_anomalies: list[Anomaly] = field(default_factory=list)
    chem_anomalies: list[Anomaly] = field(default_factory=list)
    extra: dict = field(default_factory=dict)

    _KNOWN = (
        "probability", "favorable_zone", "rationale", "target_area",
        "drill_sites", "geo_anomalies", "chem_anomalies",
    )

    @classmethod
    def from_dict(cls, raw: dict) -> "ReportPayload":
        area = raw.get("target_area")

        def _records(name: str, factory) -> list:
            items = raw.get(name)
            return [factory(item) for item in items] if isinstance(items, list) else []

        extra = _split_known(raw, cls._KNOWN)
        # Keep ill-typed known fields rather than dropping them.
        for name in ("target_area", "drill_sites", "geo_anomalies", "chem_anomalies"):
            if name in raw and not isinstance(raw[name], list):
                extra[name] = raw[name]

        return cls(
            probability=raw.get("probability"),
            favorable_zone=raw.get("favorable_zone"),
            rationale=raw.get("rationale"),
            target_area=list(area) if isinstance(area, list) else [],
            drill_sites=_records("drill_sites", DrillSite.from_dict),
            geo_anomalies=_records("geo_anomalies", Anomaly.from_dict),
            chem_anomalies=_records("chem_anomalies", Anomaly.from_dict),
            extra=extra,
        )

    @property
    def polygon(self) -> list[tuple[float, float]]:
        return [v for v in map(_vertex, self.target_area) if v is not None]

    @property
    def has_geospatial(self) -> bool:
        """True when the host sent a non-empty target area or drill-site list, in any shape."""
        return bool(
            self.target_area
            or self.drill_sites
            or self.extra.get("target_area")
            or self.extra.get("drill_sites")
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {}
        for name in ("probability", "favorable_zone", "rationale"):
            value = getattr(self, name)
            if value is not None:
                out[name] = value
        if self.target_area:
            out["target_area"] = list(self.target_area)
        for name in ("drill_sites", "geo_anomalies", "chem_anomalies"):
            records = getattr(self, name)
            if records:
                out[name] = [r.to_dict() for r in records]
        out.update(self.extra)
        return out


@dataclass(frozen=True)
class Ask:
    target: str          # registered agent key
    content: str


@dataclass(frozen=True)
class Finish:
    content: ReportPayload | str


@dataclass(frozen=True)
class Unrecognized:
    raw: str
    reason: str


Command = Ask | Finish | Unrecognized


class DebateStatus(str, Enum):
    IDLE = "idle"
    BROADCASTING = "broadcasting"
    HOST_EVALUATING = "host_evaluating"
    AGENT_FOLLOW_UP = "agent_follow_up"
    FINISHED = "finished"
    ABORTED = "aborted"
    EXHAUSTED = "exhausted"


@dataclass
class DebateOutcome:
    status: DebateStatus
    rounds: int = 0
    report: ReportPayload | None = None
    text: str | None = None      # free-form report, or raw host text on abort
    reason: str = ""


@dataclass
class ReferenceMaterial:
    text: str
    source: str                  # file path or "inline"
    title: str | None = None
