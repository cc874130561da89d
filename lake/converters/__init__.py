"""
Converters: rebuild domain tables (boards, issues, comments, accounts) from tool rows.
"""
