"""
Utility helpers: filesystem, subprocesses, git links and archive packing.
"""
