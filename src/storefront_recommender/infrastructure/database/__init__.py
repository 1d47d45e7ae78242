"""Persistence layer: models, connection management and the SQL store."""
