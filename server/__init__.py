"""HTTP adapter for the knowledgebase core."""
