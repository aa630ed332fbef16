"""
Supervisor location verification service for teaching practice postings
"""
__version__ = "1.0.0"
