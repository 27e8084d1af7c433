"""Tiered query resolution."""
