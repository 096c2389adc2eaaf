"""footprints — install, verify, and roll back host footprints."""

__version__ = "0.1.0"
