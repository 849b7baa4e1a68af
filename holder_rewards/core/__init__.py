"""
Core configuration, logging, database and error primitives.
"""
