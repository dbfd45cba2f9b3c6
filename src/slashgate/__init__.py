"""Discord interaction handling over webhook and gateway transports."""

__version__ = "0.1.0"
