"""
ML Package
Embeddings, user profiling and the search core.
"""
