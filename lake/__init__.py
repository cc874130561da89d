# ASANA LAKE - Core Library
"""
Asana ingestion pipeline: raw collection, structural extraction,
classification and domain conversion over a single SQLite lake.

Entry points:
    lake.pipeline.run_pipeline     run the stages for one project
    lake.remote_scopes.browse      walk workspace -> team/portfolio/goal -> project
"""
