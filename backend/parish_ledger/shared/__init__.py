"""Shared components used across modules."""
