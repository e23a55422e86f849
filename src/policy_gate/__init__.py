"""Policy Gate - policy-driven change evaluation engine."""

__version__ = "0.1.0"
