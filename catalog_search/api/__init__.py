"""
Catalog Search API
FastAPI application, routers, models and middleware.
"""
