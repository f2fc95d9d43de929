"""Course RAG assistant: retrieval-augmented answers over course docs."""
