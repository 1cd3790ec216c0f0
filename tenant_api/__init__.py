"""
Multi-Tenant HR API

Database-per-tenant backend: resolves the tenant of every request, verifies
and reconciles its store, and issues access/refresh tokens.
"""

__version__ = "1.0.0"
