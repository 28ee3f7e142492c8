"""
HTTP API for duplicate detection.
"""
