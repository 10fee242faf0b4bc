"""
Test suite for secretary-sync.
"""
