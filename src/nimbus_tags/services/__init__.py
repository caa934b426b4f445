"""Reconciliation and traversal services."""
