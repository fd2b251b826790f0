"""Artifact storage for audit inputs and reports."""
