"""Rich console output, report cards, and transcript/GeoJSON file export."""

import json
import logging
import re
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from src.models import DebateOutcome, DebateStatus, ReportPayload, TranscriptEntry
from src.transcript import Transcript

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_STATUS_STYLE = {
    DebateStatus.FINISHED: "bold green",
    DebateStatus.ABORTED: "bold red",
    DebateStatus.EXHAUSTED: "bold yellow",
}


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len] or "debate"


def _cell(value) -> str:
    return "-" if value is None or value == "" else str(value)


def format_sources(references, limit: int = 5) -> str:
    """One-line list of the documents an answer cites, deduplicated in citation order."""
    names: list[str] = []
    for chunk in references:
        if isinstance(chunk, dict):
            name = chunk.get("document_name") or chunk.get("doc_name") or chunk.get("document_id")
            if not name:
                name = " ".join(str(chunk.get("content", "")).split())[:60]
        else:
            name = chunk
        name = str(name)
        if name and name not in names:
            names.append(name)
    if not names:
        return ""
    more = f" (+{len(names) - limit} more)" if len(names) > limit else ""
    return "Sources: " + "; ".join(names[:limit]) + more


def format_report(payload: ReportPayload) -> str:
    """Render a report payload as a markdown report card."""
    lines: list[str] = ["## Exploration Report", ""]
    if payload.probability is not None:
        lines.append(f"**Mineralization probability:** {payload.probability}")
    if payload.favorable_zone:
        lines.append(f"**Favorable zone:** {payload.favorable_zone}")
    if payload.rationale:
        lines += ["", payload.rationale]

    if payload.extra:
        lines += ["", "### Details", ""]
        for key, value in payload.extra.items():
            if not isinstance(value, str):
                value = json.dumps(value, ensure_ascii=False)
            lines.append(f"- **{key}:** {value}")

    if payload.target_area:
        polygon = payload.polygon
        lines += ["", f"### Target area ({len(polygon)} vertices)", ""]
        lines.append(", ".join(f"({lat:.5f}, {lng:.5f})" for lat, lng in polygon))
        skipped = len(payload.target_area) - len(polygon)
        if skipped:
            lines.append(f"{skipped} unreadable vertices: {json.dumps(payload.target_area, ensure_ascii=False)}")

    if payload.drill_sites:
        lines += ["", "### Proposed drill sites", "", "| ID | Lat | Lng | Depth | Reason |", "|---|---|---|---|---|"]
        for idx, site in enumerate(payload.drill_sites, start=1):
            lines.append(
                f"| {site.id or f'ZK{idx}'} | {_cell(site.lat)} | {_cell(site.lng)} "
                f"| {_cell(site.depth)} | {_cell(site.reason)} |"
            )

    for title, anomalies in (
        ("Geophysical anomalies", payload.geo_anomalies),
        ("Geochemical anomalies", payload.chem_anomalies),
    ):
        if not anomalies:
            continue
        lines += ["", f"### {title}", ""]
        for anom in anomalies:
            lines.append(
                f"- {anom.label} at ({_cell(anom.lat)}, {_cell(anom.lng)}), "
                f"radius {_cell(anom.radius)} m, value {_cell(anom.value)}: {_cell(anom.desc)}"
            )

    return "\n".join(lines)


def print_entry(entry: TranscriptEntry) -> None:
    """Print one transcript entry as a chat bubble."""
    if entry.role == "system":
        console.print(Text(entry.content, style="dim italic"))
        return
    title = f"[bold]{entry.role}[/bold]" + (f" ({entry.key})" if entry.key else "")
    border = "cyan" if entry.role == "user" else "dim"
    console.print(Panel(Markdown(entry.content), title=title, border_style=border))
    sources = format_sources(entry.references)
    if sources:
        console.print(Text(sources, style="dim"))


def print_report(payload: ReportPayload) -> None:
    console.print(Rule("[bold green]Final Report[/bold green]"))
    console.print(Markdown(format_report(payload)))


def print_geospatial_summary(payload: ReportPayload) -> None:
    """Tabulate the map layers a renderer would draw."""
    table = Table(title="Map layers", show_lines=False)
    table.add_column("Layer")
    table.add_column("Features", justify="right")
    table.add_row("Target area vertices", str(len(payload.polygon)))
    table.add_row("Drill sites", str(len(payload.drill_sites)))
    table.add_row("Geophysical anomalies", str(len(payload.geo_anomalies)))
    table.add_row("Geochemical anomalies", str(len(payload.chem_anomalies)))
    console.print(table)


def print_outcome(outcome: DebateOutcome) -> None:
    style = _STATUS_STYLE.get(outcome.status, "bold")
    console.print(
        Text(
            f"Status: {outcome.status.value} | Rounds: {outcome.rounds} | {outcome.reason}",
            style=style,
        )
    )


def save_transcript(
    transcript: Transcript,
    output_dir: Path,
    topic: str = "",
    outcome: DebateOutcome | None = None,
) -> Path:
    """Save the debate transcript (and final report, if any) as markdown.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_{_slug(topic)}.md"

    lines: list[str] = [
        f"# Prospect Council Debate: {topic[:80] or 'untitled'}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
    ]
    if outcome is not None:
        lines += [
            f"**Status:** {outcome.status.value}",
            f"**Rounds:** {outcome.rounds}",
            f"**Reason:** {outcome.reason}",
        ]
    lines += ["", "---", "", "## Transcript", ""]

    for entry in transcript:
        heading = entry.role + (f" ({entry.key})" if entry.key else "")
        lines += [f"### {heading}", "", entry.content, ""]
        sources = format_sources(entry.references, limit=20)
        if sources:
            lines += [f"*{sources}*", ""]

    if outcome is not None and outcome.report is not None:
        lines += [format_report(outcome.report), ""]
    elif outcome is not None and outcome.text:
        lines += ["## Host conclusion", "", outcome.text, ""]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Transcript saved to: %s", filepath)
    return filepath


def to_geojson(payload: ReportPayload) -> dict:
    """Build a GeoJSON FeatureCollection. Coordinates are [lng, lat] per RFC 7946."""
    features: list[dict] = []
    polygon = payload.polygon
    if len(polygon) >= 3:
        ring = [[lng, lat] for lat, lng in polygon]
        if ring[0] != ring[-1]:
            ring.append(ring[0])
        features.append({
            "type": "Feature",
            "geometry": {"type": "Polygon", "coordinates": [ring]},
            "properties": {"layer": "target_area", "favorable_zone": payload.favorable_zone},
        })

    def _point(layer: str, lat, lng, props: dict) -> None:
        if lat is None or lng is None:
            return
        features.append({
            "type": "Feature",
            "geometry": {"type": "Point", "coordinates": [lng, lat]},
            "properties": {"layer": layer, **props},
        })

    for site in payload.drill_sites:
        props = site.to_dict()
        props.pop("lat", None)
        props.pop("lng", None)
        _point("drill_site", site.lat, site.lng, props)
    for layer, anomalies in (("geo_anomaly", payload.geo_anomalies), ("chem_anomaly", payload.chem_anomalies)):
        for anom in anomalies:
            props = anom.to_dict()
            props.pop("lat", None)
            props.pop("lng", None)
            _point(layer, anom.lat, anom.lng, props)

    return {"type": "FeatureCollection", "features": features}


def save_geojson(payload: ReportPayload, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(to_geojson(payload), ensure_ascii=False, indent=2), encoding="utf-8")
    logger.info("GeoJSON saved to: %s", path)
    return path
