"""Membership dues with multi-year rollover."""
