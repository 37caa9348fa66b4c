"""
Top-level package for the census project.

The age ranking service lives under `census.age_census`; shared ambient
helpers (logging) sit at this level so other census services can reuse them.
"""

__all__: list[str] = []
