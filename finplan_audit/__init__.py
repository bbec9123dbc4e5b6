"""Audit checks and reports for generated models."""
