"""RAG (Retrieval-Augmented Generation) pipeline components.

This package contains modules for:
- Vector stores (hosted Supabase, local FAISS)
- Semantic retrieval
- Grounded prompt assembly
- Knowledge base seeding
"""
