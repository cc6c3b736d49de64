"""
Schema Sync - keeps a visual schema graph and its SQL DDL in step
"""
__version__ = "1.0.0"
