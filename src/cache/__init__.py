"""Scoped semantic response cache and its storage backends."""
