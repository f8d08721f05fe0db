"""
Per-user notifications plus an in-process change feed for live refresh.
"""
