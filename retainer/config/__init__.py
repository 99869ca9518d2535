"""Configuration for retainer."""
