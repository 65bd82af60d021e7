"""Ghost job detection: admission control, posting cache, snapshots and scoring."""

__version__ = "0.1.0"
