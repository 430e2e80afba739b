"""pactlayer - consumer-driven contract testing."""

__version__ = "0.1.0"
