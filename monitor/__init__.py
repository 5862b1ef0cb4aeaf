"""
Site monitor package.

This package contains:
- Snapshot storage and hashing
- Streaming redaction of volatile form tokens
- Change and marker detection
- SMTP notification dispatch
- The single-shot monitoring pipeline
"""

__version__ = "1.0.0"
