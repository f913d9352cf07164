"""Plain-text rendering of drive reports."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from msod_stat.orchestration.runner import DriveReport

KIB = 1024
MIB = 1024 * 1024

# Sizes below this are shown as an exact byte count
_BYTES_THRESHOLD = 32 * KIB
# Sizes below this many MiB are shown in MiB, larger ones in GiB
_MIB_THRESHOLD = 1000.0


def size_as_string(value: int) -> str:
    """Format a byte count: exact bytes below 32 KiB, then MiB, then GiB."""
    if value < _BYTES_THRESHOLD:
        return f"{value} bytes"
    mib = value / MIB
    if mib < _MIB_THRESHOLD:
        return f"{mib:.3f} MiB"
    return f"{mib / 1024:.3f} GiB"


def render_drive_report(report: DriveReport) -> str:
    """Render a drive's statistics and duplicate groups as text.

    Args:
        report: Finalized DriveReport.

    Returns:
        Multi-line report text ending with a newline.
    """
    drive = report.drive
    stats = report.stats
    lines: list[str] = [
        f"Drive {drive.id}",
        f"folders:{stats.folders:>10}",
        f"files:  {stats.files:>10}",
        f"bytes:  {size_as_string(stats.total_bytes):>18}",
        f"total:  {size_as_string(drive.total):>18}",
        f"free:   {size_as_string(drive.remaining):>18}",
        f"used:   {size_as_string(drive.used):>18} = {drive.used_percent:.2f}%"
        f" (including {size_as_string(drive.deleted)} pending deletion)",
        "",
    ]

    if not report.duplicates:
        lines.append("No duplicate files found.")
    else:
        lines.append("Duplicates:")
        for group in report.duplicates:
            lines.append(
                f"{size_as_string(group.total_size)}"
                f" ({group.count} x {size_as_string(group.size)})"
            )
            lines.extend(f"  {path}" for path in group.paths)

    for anomaly in report.anomalies:
        sizes = ", ".join(size_as_string(s) for s in sorted(anomaly.sizes))
        lines.append(f"warning: hash {anomaly.signature.value} seen with sizes {sizes}")

    lines.append("")
    return "\n".join(lines)
