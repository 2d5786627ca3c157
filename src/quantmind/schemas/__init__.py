"""
Schemas for the quantmind API
"""
