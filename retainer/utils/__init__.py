"""Utility helpers for retainer."""
