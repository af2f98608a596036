"""
Per-group log collection.
"""
