"""
Core modules for Claude Usage.

This package contains pricing, filtering, aggregation and sorting of
Claude Code usage records.
"""
