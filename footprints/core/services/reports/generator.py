"""
Synthetic crash report generator.

``generate()`` is a pure function of its random source and the injected
HostEnvironment: the same seed and host always yield equal reports.
Every report is checked by ``validate_report()`` before it is returned.
"""

from __future__ import annotations

import random
import re
import uuid
from datetime import UTC, datetime

from footprints.core.models.report import BinaryImage, HostEnvironment, StackFrame, SyntheticReport


class ReportValidationError(ValueError):
    """A report breaks one or more structural invariants."""

    def __init__(self, problems: list[str]):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


# ── Catalogs ────────────────────────────────────────────────────


# (process name, bundle identifier, executable path)
PROCESS_CATALOG: tuple[tuple[str, str, str], ...] = (
    ("WindowServer", "com.apple.WindowServer",
     "/System/Library/PrivateFrameworks/SkyLight.framework/Versions/A/Resources/WindowServer"),
    ("Dock", "com.apple.dock", "/System/Library/CoreServices/Dock.app/Contents/MacOS/Dock"),
    ("Finder", "com.apple.finder", "/System/Library/CoreServices/Finder.app/Contents/MacOS/Finder"),
    ("SystemUIServer", "com.apple.systemuiserver",
     "/System/Library/CoreServices/SystemUIServer.app/Contents/MacOS/SystemUIServer"),
    ("loginwindow", "com.apple.loginwindow",
     "/System/Library/CoreServices/loginwindow.app/Contents/MacOS/loginwindow"),
    ("mds", "com.apple.mds", "/System/Library/Frameworks/CoreServices.framework/Frameworks/Metadata.framework/Support/mds"),
    ("mdworker", "com.apple.mdworker",
     "/System/Library/Frameworks/CoreServices.framework/Frameworks/Metadata.framework/Versions/A/Support/mdworker"),
    ("cfprefsd", "com.apple.cfprefsd", "/usr/sbin/cfprefsd"),
    ("com.apple.WebKit.WebContent", "com.apple.WebKit.WebContent",
     "/System/Library/Frameworks/WebKit.framework/Versions/A/XPCServices/"
     "com.apple.WebKit.WebContent.xpc/Contents/MacOS/com.apple.WebKit.WebContent"),
)

# (exception type, signal)
EXCEPTION_CATALOG: tuple[tuple[str, str], ...] = (
    ("EXC_BAD_ACCESS", "SIGSEGV"),
    ("EXC_BAD_INSTRUCTION", "SIGILL"),
    ("EXC_CRASH", "SIGABRT"),
    ("EXC_BREAKPOINT", "SIGTRAP"),
    ("EXC_ARITHMETIC", "SIGFPE"),
)

CRASH_SITE_IMAGE = "libsystem_kernel.dylib"
CRASH_SITE_PATH = "/usr/lib/system/libsystem_kernel.dylib"
CRASH_SITE_SYMBOLS = ("__pthread_kill", "mach_msg2_trap", "__psynch_cvwait", "__workq_kevent", "__semwait_signal")

FRAMEWORK_CATALOG: tuple[str, ...] = (
    "CoreFoundation",
    "Foundation",
    "AppKit",
    "Security",
    "SystemConfiguration",
    "CoreServices",
    "CoreGraphics",
    "CoreData",
    "QuartzCore",
    "CoreLocation",
)

SYMBOL_CATALOG: tuple[str, ...] = (
    "CFRunLoopRun",
    "__CFRunLoopRun",
    "__CFRunLoopServiceMachPort",
    "CFRunLoopRunSpecific",
    "NSApplicationMain",
    "_DPSNextEvent",
    "_NSEventThread",
    "objc_msgSend",
    "main",
    "start",
)

# Frameworks are mapped from here up; one canonical shared-cache region.
ADDRESS_LOW = 0x00007FF800000000
ADDRESS_HIGH = 0x0000800000000000

HEX_ADDRESS_RE = re.compile(r"^0x[0-9a-f]{16}$")
IMAGE_UUID_RE = re.compile(r"^[0-9A-F]{8}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{4}-[0-9A-F]{12}$")

MIN_FRAMES = 5
MAX_FRAMES = 14
DEFAULT_WINDOW_S = 86400


def format_address(value: int) -> str:
    return f"0x{value:016x}"


def framework_path(name: str) -> str:
    return f"/System/Library/Frameworks/{name}.framework/Versions/A/{name}"


def _image_uuid(rng: random.Random) -> str:
    return str(uuid.UUID(int=rng.getrandbits(128), version=4)).upper()


# ── Generation ──────────────────────────────────────────────────


def generate(
    seed: int | None = None,
    host: HostEnvironment | None = None,
    rng: random.Random | None = None,
    *,
    incident_id: str | None = None,
    window_seconds: int = DEFAULT_WINDOW_S,
) -> SyntheticReport:
    """Produce one structurally valid synthetic crash report.

    Args:
        seed: Seed for a private ``random.Random``; ignored when *rng* is given.
            With neither, a fresh unseeded source is used.
        host: Header values (OS versions, boot and capture time).
        rng: Explicit random source (a running loop passes its own).
        incident_id: Value of the report's anonymous/incident id;
            drawn from the random source when omitted.
        window_seconds: How far before ``host.captured_at`` the crash may lie.

    Raises:
        ReportValidationError: Never for generated data; raised if an
            invariant is broken, before anything is returned.
    """
    if rng is None:
        rng = random.Random(seed)
    host = host or HostEnvironment()

    # 1. Process and timing
    process_name, identifier, path = rng.choice(PROCESS_CATALOG)
    process_id = rng.randint(100, 99999)
    crash_at = host.captured_at - rng.uniform(0, window_seconds)
    crash_at = max(crash_at, host.boot_time)
    timestamp = datetime.fromtimestamp(crash_at, UTC)
    timestamp_utc = timestamp.strftime("%Y-%m-%d %H:%M:%S.") + f"{timestamp.microsecond // 1000:03d} +0000"
    uptime_seconds = int(crash_at - host.boot_time)

    # 2. Exception
    exception_kind, signal = rng.choice(EXCEPTION_CATALOG)
    crash_address = format_address(rng.randrange(ADDRESS_LOW, ADDRESS_HIGH))
    exception_codes = f"{format_address(rng.randint(1, 2))}, {crash_address}"
    crashed_thread = rng.randint(0, 15)

    # 3. Frame layout: crash site first, then frameworks taking turns
    frame_count = rng.randint(MIN_FRAMES, MAX_FRAMES)
    frameworks = rng.sample(FRAMEWORK_CATALOG, rng.randint(2, 3))
    frame_images = [CRASH_SITE_IMAGE] + [
        frameworks[(i - 1) % len(frameworks)] for i in range(1, frame_count)
    ]

    # 4. Binary images, ascending and disjoint
    image_names = list(dict.fromkeys(frame_images))
    cursor = ADDRESS_LOW + rng.randrange(0x10, 0x1000) * 0x1000
    ranges: dict[str, tuple[int, int]] = {}
    images: list[BinaryImage] = []
    for name in image_names:
        size = rng.randrange(0x40, 0x800) * 0x1000
        start, end = cursor, cursor + size - 1
        ranges[name] = (start, end)
        images.append(BinaryImage(
            image_name=name,
            load_start=format_address(start),
            load_end=format_address(end),
            uuid=_image_uuid(rng),
            path=CRASH_SITE_PATH if name == CRASH_SITE_IMAGE else framework_path(name),
        ))
        cursor = end + 1 + rng.randrange(1, 0x100) * 0x1000

    frames = []
    for index, image_name in enumerate(frame_images):
        start, end = ranges[image_name]
        symbols = CRASH_SITE_SYMBOLS if index == 0 else SYMBOL_CATALOG
        frames.append(StackFrame(
            index=index,
            image_name=image_name,
            address=format_address(rng.randint(start + 0x1000, end)),
            symbol_name=rng.choice(symbols),
            symbol_offset=rng.randint(0, 999),
        ))

    # 5. Header
    report = SyntheticReport(
        process_name=process_name,
        process_id=process_id,
        identifier=identifier,
        path=path,
        timestamp_utc=timestamp_utc,
        exception_kind=exception_kind,
        signal=signal,
        exception_codes=exception_codes,
        crash_address=crash_address,
        crashed_thread=crashed_thread,
        incident_id=incident_id or _image_uuid(rng),
        uptime_seconds=uptime_seconds,
        os_version=host.os_version,
        build_version=host.build_version,
        kernel_version=host.kernel_version,
        hardware_model=host.hardware_model,
        code_type=host.code_type,
        stack_frames=tuple(frames),
        binary_images=tuple(images),
    )
    validate_report(report)
    return report


# ── Validation ──────────────────────────────────────────────────


def report_problems(report: SyntheticReport) -> list[str]:
    """Every structural invariant the report breaks (empty when valid)."""
    problems: list[str] = []

    if not HEX_ADDRESS_RE.match(report.crash_address):
        problems.append(f"crash address {report.crash_address!r} is not fixed-width hex")

    frames = report.stack_frames
    if not frames:
        problems.append("no stack frames")
    indices = [f.index for f in frames]
    if indices != list(range(len(frames))):
        problems.append(f"frame indices {indices} are not 0..{len(frames) - 1}")

    ranges: dict[str, tuple[int, int]] = {}
    for img in report.binary_images:
        if img.image_name in ranges:
            problems.append(f"binary image {img.image_name} listed twice")
            continue
        if not (HEX_ADDRESS_RE.match(img.load_start) and HEX_ADDRESS_RE.match(img.load_end)):
            problems.append(f"binary image {img.image_name} has a malformed load range")
            continue
        start, end = int(img.load_start, 16), int(img.load_end, 16)
        if start >= end:
            problems.append(f"binary image {img.image_name} has an empty load range")
        if not IMAGE_UUID_RE.match(img.uuid):
            problems.append(f"binary image {img.image_name} has a malformed uuid")
        ranges[img.image_name] = (start, end)

    ordered = sorted(ranges.values())
    for (_, prev_end), (next_start, _) in zip(ordered, ordered[1:]):
        if next_start <= prev_end:
            problems.append("binary image load ranges overlap")
            break

    for frame in frames:
        if not HEX_ADDRESS_RE.match(frame.address):
            problems.append(f"frame {frame.index} address {frame.address!r} is not fixed-width hex")
            continue
        if frame.image_name not in ranges:
            problems.append(f"frame {frame.index} references unknown image {frame.image_name}")
            continue
        start, end = ranges[frame.image_name]
        if not start <= int(frame.address, 16) <= end:
            problems.append(f"frame {frame.index} address lies outside {frame.image_name}")

    return problems


def validate_report(report: SyntheticReport) -> SyntheticReport:
    """Return *report* unchanged, or raise ReportValidationError."""
    problems = report_problems(report)
    if problems:
        raise ReportValidationError(problems)
    return report
