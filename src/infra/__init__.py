"""Infrastructure layer package.

Implements Port interfaces with concrete adapters (PostgreSQL, Redis) and
hosts the organization context services built on them.
"""
