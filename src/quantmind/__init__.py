"""
quantmind

Recovers structured data from free-form LLM market commentary.
"""

__version__ = "1.1.5"
