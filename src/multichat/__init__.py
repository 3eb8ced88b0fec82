"""
Multi Chat: side-by-side streaming conversations with several LLM backends.
"""

__version__ = "0.1.0"
