"""Browser file manager for an S3-compatible bucket."""

__version__ = "1.0.0"
