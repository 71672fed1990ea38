"""
Core modules for the AI gateway.

This package contains the caching, rate limiting, retry, usage accounting,
response parsing and embedding components the gateway client is built from.
"""
