"""RZManager change tracking: snapshots, diffs, staging and commits."""

__version__ = "0.1.0"
