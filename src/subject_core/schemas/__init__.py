"""JSON schemas for subject pipeline configuration files.

- pipeline.schema.json: combine/scrape configuration (paths, similarity sources, API settings)
"""
