"""
Catalog Search
Hybrid ranking and personalized product search for the B2B catalog.
"""

__version__ = "0.1.0"
