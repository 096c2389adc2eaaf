"""
Shared test fixtures and configuration.

Every path the suite touches lives under ``tmp_path``, and every host
capability is an in-memory mock.
"""

import random
import time
from collections.abc import Callable
from pathlib import Path

import pytest

from footprints.adapters.registry import AdapterRegistry
from footprints.core.engine.controller import LifecycleController
from footprints.core.models.settings import (
    LogInjectionSettings,
    ReportForgerySettings,
    ServiceSettings,
    Settings,
    TagSettings,
)
from footprints.core.primitives import PrimitiveContext
from footprints.core.services.clock import FixedClock
from footprints.core.use_cases.lifecycle import build_context


@pytest.fixture
def host_root(tmp_path: Path) -> Path:
    """Stand-in for the host filesystem."""
    root = tmp_path / "host"
    root.mkdir()
    return root


@pytest.fixture
def settings(tmp_path: Path, host_root: Path) -> Settings:
    """Settings pointing every footprint at the scratch host."""
    return Settings(
        state_dir=str(tmp_path / "state"),
        backup_dir=str(tmp_path / "state" / "backups"),
        require_privilege=True,
        stop_grace_seconds=2.0,
        tag=TagSettings(
            locations=[str(host_root / "Library" / "Application Support"), str(host_root / "usr" / "local")],
            identity_marker=str(host_root / "Library" / "Preferences" / ".footprints_identity"),
        ),
        service=ServiceSettings(descriptor_dir=str(host_root / "LaunchDaemons")),
        log_injection=LogInjectionSettings(
            log_dir=str(host_root / "var" / "log" / "footprints"),
            min_interval=0.01,
            max_interval=0.02,
        ),
        report_forgery=ReportForgerySettings(
            report_dir=str(host_root / "DiagnosticReports"),
            min_interval=0.01,
            max_interval=0.02,
        ),
    )


@pytest.fixture
def adapters() -> AdapterRegistry:
    return AdapterRegistry.mock()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def ctx(settings: Settings, adapters: AdapterRegistry, clock: FixedClock) -> PrimitiveContext:
    return build_context(settings, adapters, clock=clock, rng=random.Random(7))


@pytest.fixture
def controller(ctx: PrimitiveContext):
    """A controller over the mock host; its loops are stopped on teardown."""
    controller = LifecycleController(ctx)
    yield controller
    for primitive in controller.primitives.values():
        primitive.stop_loop()


@pytest.fixture
def wait_for() -> Callable[..., bool]:
    """Poll a predicate until it holds or the timeout expires."""

    def _wait(predicate: Callable[[], bool], timeout: float = 5.0) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(0.01)
        return predicate()

    return _wait
