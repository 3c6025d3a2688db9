"""Kairo proximity map engine."""
