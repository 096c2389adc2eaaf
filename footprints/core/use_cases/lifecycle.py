"""
Lifecycle use case — wire settings, adapters and stores into a controller.

This is the one place that decides which host the core runs against:
macOS tools, or mocks of them (``mock=True``).
"""

from __future__ import annotations

import logging
import random
from pathlib import Path

from footprints.adapters.registry import AdapterRegistry
from footprints.core.config.loader import find_config_file, load_settings
from footprints.core.engine.controller import LifecycleController
from footprints.core.models.report import HostEnvironment
from footprints.core.models.settings import Settings
from footprints.core.persistence.registry import StateRegistry
from footprints.core.primitives import PrimitiveContext
from footprints.core.services.backup import BackupManager
from footprints.core.services.clock import Clock

logger = logging.getLogger(__name__)


def build_context(
    settings: Settings,
    adapters: AdapterRegistry,
    config_path: Path | None = None,
    clock: Clock | None = None,
    rng: random.Random | None = None,
    host: HostEnvironment | None = None,
) -> PrimitiveContext:
    """Assemble the shared context every primitive runs in."""
    clock = clock or Clock()
    return PrimitiveContext(
        settings=settings,
        adapters=adapters,
        registry=StateRegistry(settings.registry_dir),
        backup=BackupManager(Path(settings.backup_dir), tags=adapters.get("tags"), clock=clock),  # type: ignore[arg-type]
        clock=clock,
        rng=rng or random.Random(),
        host=host,
        config_path=config_path,
    )


def build_controller(
    config_path: Path | None = None,
    *,
    settings: Settings | None = None,
    mock: bool = False,
    adapters: AdapterRegistry | None = None,
    clock: Clock | None = None,
    rng: random.Random | None = None,
    host: HostEnvironment | None = None,
) -> LifecycleController:
    """Build a controller from configuration.

    Args:
        config_path: Explicit footprints.yml (default: search upward).
        settings: Pre-loaded settings; skips loading.
        mock: Use mock adapters, kept under ``settings.mock_dir``,
            instead of the macOS tools.
        adapters: Pre-configured adapter registry (overrides *mock*).
        clock: Time source.
        rng: Random source for loops and reports.
        host: Report header values; probed from the host unless mocked.

    Raises:
        ConfigError: The configuration could not be loaded.
    """
    if config_path is None:
        config_path = find_config_file()
    if settings is None:
        settings = load_settings(config_path)

    if adapters is None:
        if mock:
            adapters = AdapterRegistry.mock(store_dir=settings.mock_dir)
        else:
            adapters = AdapterRegistry.for_macos(settings)

    if host is None and not adapters.mock_mode:
        from footprints.adapters.macos.host import probe_host

        host = probe_host()

    ctx = build_context(
        settings,
        adapters,
        config_path=config_path.resolve() if config_path else None,
        clock=clock,
        rng=rng,
        host=host,
    )
    logger.debug("Controller built (mock=%s, state_dir=%s)", adapters.mock_mode, settings.state_dir)
    return LifecycleController(ctx)
