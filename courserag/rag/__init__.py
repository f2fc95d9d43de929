"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Course markdown and web page text extraction
- Document chunking
- Embedding generation
- Vector storage (Qdrant or in-process FAISS)
- Retrieval, prompt assembly and ingestion
"""
