"""Vector retrieval, embeddings and context assembly."""
