"""Data models for Nimbus Tags."""
