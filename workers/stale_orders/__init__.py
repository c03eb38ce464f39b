"""Stale pending-order sweeper."""
