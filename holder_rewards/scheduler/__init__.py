"""
Scheduling of distribution cycles.
"""
