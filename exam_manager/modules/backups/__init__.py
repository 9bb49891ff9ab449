"""Backup history: model, schemas and HTTP routes."""
