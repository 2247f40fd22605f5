"""forksync — keep a forked project in step with its upstream framework."""

__version__ = "0.3.0"
