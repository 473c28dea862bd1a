"""buildrig — self-bootstrapping build pipeline orchestrator."""

__version__ = "0.1.0"
