"""macOS implementations of the host capabilities."""
