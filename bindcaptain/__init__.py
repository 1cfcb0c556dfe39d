"""BindCaptain: zone record management for a containerized BIND server."""

__version__ = "1.0.0"


class BindCaptainError(Exception):
    """Base class for errors reported to the operator."""
    pass
