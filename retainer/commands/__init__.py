"""CLI command groups for retainer."""
