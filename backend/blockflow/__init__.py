"""BlockFlow: execution core for block-based workflow automations."""

__version__ = "0.1.0"
