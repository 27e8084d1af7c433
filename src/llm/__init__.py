"""Language-model provider clients and answer generation."""
