"""Public facade: resolve queries, record feedback, run the learning batch."""
