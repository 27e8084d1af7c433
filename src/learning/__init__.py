"""Feedback-reinforced learned responses."""
