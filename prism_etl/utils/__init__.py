# prism_etl/utils/__init__.py
"""HTTP, PRISM service, vector and raster helpers."""
