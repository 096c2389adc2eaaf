"""
Crash report text layout.

``render_report()`` writes a SyntheticReport in the plain-text crash
report layout; ``check_document()`` reads such a document back and
applies the same structural checks a report consumer would.
"""

from __future__ import annotations

import re

from footprints.core.models.report import BinaryImage, StackFrame, SyntheticReport
from footprints.core.services.reports.generator import ReportValidationError, validate_report

_FIELD_WIDTH = 23

_HEADER_RE = re.compile(r"^([A-Za-z][A-Za-z /]*):\s+(.*)$")
_FRAME_RE = re.compile(r"^(\d+)\s+(\S+)\s+(0x[0-9a-f]{16}) (.+?) \+ (\d+)$")
_IMAGE_RE = re.compile(r"^\s*(0x[0-9a-f]{16}) - (0x[0-9a-f]{16}) (\S+) <([0-9A-F-]+)> (.+)$")
_PROCESS_RE = re.compile(r"^(.+) \[(\d+)\]$")
_EXCEPTION_RE = re.compile(r"^(\S+) \((\S+)\)$")
_OS_RE = re.compile(r"^macOS (\S+) \((\S+)\)$")
_THREAD_RE = re.compile(r"^Thread (\d+) Crashed:$")


def _field(name: str, value: object) -> str:
    return f"{name + ':':<{_FIELD_WIDTH}}{value}"


def render_report(report: SyntheticReport) -> str:
    """Render the report as crash-report text."""
    lines = [
        _field("Process", f"{report.process_name} [{report.process_id}]"),
        _field("Path", report.path),
        _field("Identifier", report.identifier),
        _field("Code Type", f"{report.code_type} (Native)"),
        _field("Parent Process", "launchd [1]"),
        _field("Hardware Model", report.hardware_model),
        "",
        _field("Date/Time", report.timestamp_utc),
        _field("OS Version", f"macOS {report.os_version} ({report.build_version})"),
        _field("Report Version", 12),
        _field("Anonymous UUID", report.incident_id),
        "",
        _field("Time Awake Since Boot", f"{report.uptime_seconds} seconds"),
        "",
        _field("Crashed Thread", report.crashed_thread),
        "",
        _field("Exception Type", f"{report.exception_kind} ({report.signal})"),
        _field("Exception Codes", report.exception_codes),
        "",
        f"Thread {report.crashed_thread} Crashed:",
    ]
    for frame in report.stack_frames:
        lines.append(
            f"{frame.index:<4}{frame.image_name:<40}{frame.address} "
            f"{frame.symbol_name} + {frame.symbol_offset}"
        )
    lines += ["", "Binary Images:"]
    for img in report.binary_images:
        lines.append(f"{img.load_start} - {img.load_end} {img.image_name} <{img.uuid}> {img.path}")
    lines += [
        "",
        "System Information:",
        f"    macOS Version: {report.os_version} ({report.build_version})",
        f"    Kernel Version: Darwin {report.kernel_version}",
        f"    Time since boot: {report.uptime_seconds} seconds",
        "",
    ]
    return "\n".join(lines)


def _section(lines: list[str], start: int) -> list[str]:
    out = []
    for line in lines[start:]:
        if not line.strip():
            break
        out.append(line)
    return out


def check_document(text: str) -> SyntheticReport:
    """Parse a rendered report and validate it.

    Raises:
        ReportValidationError: Missing header fields, malformed lines, or
            broken structural invariants.
    """
    lines = text.splitlines()
    problems: list[str] = []

    header: dict[str, str] = {}
    thread_at = images_at = None
    for i, line in enumerate(lines):
        if _THREAD_RE.match(line):
            thread_at = i + 1
        elif line == "Binary Images:":
            images_at = i + 1
        elif thread_at is None:
            match = _HEADER_RE.match(line)
            if match:
                header[match.group(1)] = match.group(2).strip()

    required = (
        "Process", "Path", "Identifier", "Code Type", "Hardware Model", "Date/Time",
        "OS Version", "Anonymous UUID", "Time Awake Since Boot", "Crashed Thread",
        "Exception Type", "Exception Codes",
    )
    missing = [name for name in required if name not in header]
    if missing:
        problems.append(f"missing header field(s): {', '.join(missing)}")
    if thread_at is None:
        problems.append("no crashed thread section")
    if images_at is None:
        problems.append("no Binary Images section")
    if problems:
        raise ReportValidationError(problems)

    process = _PROCESS_RE.match(header["Process"])
    exception = _EXCEPTION_RE.match(header["Exception Type"])
    os_version = _OS_RE.match(header["OS Version"])
    kernel = next((ln.split("Darwin", 1)[1].strip() for ln in lines if "Kernel Version: Darwin" in ln), None)
    codes = [c.strip() for c in header["Exception Codes"].split(",")]
    for label, value in (("Process", process), ("Exception Type", exception), ("OS Version", os_version)):
        if value is None:
            problems.append(f"malformed {label} line")
    if kernel is None:
        problems.append("missing kernel version")
    if len(codes) != 2:
        problems.append("malformed Exception Codes line")

    frames = []
    for line in _section(lines, thread_at):
        match = _FRAME_RE.match(line)
        if match is None:
            problems.append(f"malformed frame line: {line!r}")
            continue
        frames.append(StackFrame(
            index=int(match.group(1)),
            image_name=match.group(2),
            address=match.group(3),
            symbol_name=match.group(4),
            symbol_offset=int(match.group(5)),
        ))

    images = []
    for line in _section(lines, images_at):
        match = _IMAGE_RE.match(line)
        if match is None:
            problems.append(f"malformed binary image line: {line!r}")
            continue
        images.append(BinaryImage(
            load_start=match.group(1),
            load_end=match.group(2),
            image_name=match.group(3),
            uuid=match.group(4),
            path=match.group(5),
        ))

    if problems:
        raise ReportValidationError(problems)

    try:
        uptime = int(header["Time Awake Since Boot"].split()[0])
        crashed_thread = int(header["Crashed Thread"])
    except ValueError as e:
        raise ReportValidationError([f"malformed numeric header: {e}"]) from e

    report = SyntheticReport(
        process_name=process.group(1),
        process_id=int(process.group(2)),
        identifier=header["Identifier"],
        path=header["Path"],
        timestamp_utc=header["Date/Time"],
        exception_kind=exception.group(1),
        signal=exception.group(2),
        exception_codes=header["Exception Codes"],
        crash_address=codes[1],
        crashed_thread=crashed_thread,
        incident_id=header["Anonymous UUID"],
        uptime_seconds=uptime,
        os_version=os_version.group(1),
        build_version=os_version.group(2),
        kernel_version=kernel,
        hardware_model=header["Hardware Model"],
        code_type=header["Code Type"].removesuffix(" (Native)"),
        stack_frames=tuple(frames),
        binary_images=tuple(images),
    )
    return validate_report(report)
