from __future__ import annotations

from datetime import datetime, timezone
import math
from typing import Iterable

import numpy as np

from loudscan.corpus.cache import ResultCache
from loudscan.types import BatchResult, Measurement, Outcome
from loudscan.utils.hashing import sha256_hex_canonical_json


def _summary_stats(values: Iterable[float]) -> dict | None:
    vals = [float(v) for v in values if isinstance(v, (int, float)) and math.isfinite(v)]
    if not vals:
        return None
    arr = np.asarray(vals, dtype=np.float64)
    return {
        "count": int(arr.size),
        "mean": float(np.mean(arr)),
        "min": float(np.min(arr)),
        "p50": float(np.percentile(arr, 50)),
        "p90": float(np.percentile(arr, 90)),
        "max": float(np.max(arr)),
    }


def _measurement_stats(measurements: dict[str, Measurement]) -> dict:
    return {
        "loudness_lufs": _summary_stats(m.loudness for m in measurements.values()),
        "energy": _summary_stats(m.energy for m in measurements.values()),
    }


def _checksum(measurements: dict[str, Measurement]) -> str:
    payload = {k: measurements[k].to_dict() for k in sorted(measurements)}
    return sha256_hex_canonical_json(payload)


def build_batch_summary(result: BatchResult, *, generated_utc: str | None = None) -> dict:
    """Summarize one batch run: outcome counts, failure causes, distributions."""
    counts = {o.value: 0 for o in Outcome}
    failure_causes: dict[str, int] = {}
    measured: dict[str, Measurement] = {}

    for r in result.results:
        counts[r.outcome.value] += 1
        if r.outcome == Outcome.FAILED:
            cause = r.error_kind or "unknown"
            failure_causes[cause] = failure_causes.get(cause, 0) + 1
        elif r.outcome == Outcome.MEASURED and r.measurement is not None:
            measured[r.key] = r.measurement

    total = len(result.results)
    generated_utc = generated_utc or datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    return {
        "schema_version": "1.0",
        "generated_utc": generated_utc,
        "cache_file": str(result.snapshot_path) if result.snapshot_path else None,
        "totals": {
            "files": total,
            "status_counts": counts,
            "snapshots_written": result.snapshots_written,
        },
        "failure_causes": dict(sorted(failure_causes.items(), key=lambda kv: kv[1], reverse=True)),
        "measured": _measurement_stats(measured),
        "kpis": {
            "measured_rate": counts["measured"] / max(1, total),
            "skipped_rate": counts["skipped"] / max(1, total),
            "failed_rate": counts["failed"] / max(1, total),
        },
        "checksum": {"measured_sha256": _checksum(measured)},
    }


def build_cache_summary(cache: ResultCache) -> dict:
    """Summarize the contents of a cache file."""
    entries = dict(cache.items())
    return {
        "entries": len(entries),
        "stats": _measurement_stats(entries),
        "checksum": {"entries_sha256": _checksum(entries)},
    }


def render_cache_summary(summary: dict) -> str:
    lines = [f"Entries: {summary['entries']}"]
    for label, key, unit in (("Loudness", "loudness_lufs", " LUFS"), ("Energy", "energy", "")):
        stats = summary["stats"].get(key)
        if not stats:
            lines.append(f"{label}: n/a")
            continue
        lines.append(
            f"{label}: mean {stats['mean']:.2f}{unit}, min {stats['min']:.2f}, "
            f"p50 {stats['p50']:.2f}, p90 {stats['p90']:.2f}, max {stats['max']:.2f}"
        )
    lines.append(f"Checksum: {summary['checksum']['entries_sha256']}")
    return "\n".join(lines)
