"""Relational storage: query logs, feedback, learned responses, config."""
