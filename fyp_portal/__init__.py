"""
fyp_portal - duplicate detection for final year project submissions.
"""

__version__ = "1.0.0"
