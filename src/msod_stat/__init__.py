"""Storage statistics and duplicate detection for OneDrive drives."""

__version__ = "0.1.0"
