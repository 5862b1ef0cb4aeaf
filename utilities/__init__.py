"""
Shared utilities: configuration loading and logging setup.
"""
