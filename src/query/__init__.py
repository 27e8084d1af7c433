"""Query normalization, expansion and simple-query classification."""
