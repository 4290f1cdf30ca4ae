"""Persistence for job snapshots."""
