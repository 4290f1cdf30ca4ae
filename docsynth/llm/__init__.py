"""Collaborator adapters for language models."""
