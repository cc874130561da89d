"""
Extractors: turn raw records into flat `_tool_asana_*` rows.
"""
