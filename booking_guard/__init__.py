"""booking-guard: admission control for a public booking endpoint."""

__version__ = "0.1.0"
