"""Batch job tasks."""
