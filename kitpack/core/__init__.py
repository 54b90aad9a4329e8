"""
Core package for shared utilities.

Holds application settings and structured logging configuration used across
the packing service, database layer and HTTP surface.
"""
