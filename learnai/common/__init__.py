"""
Shared infrastructure: logging, configuration, error handling, caching.
"""
