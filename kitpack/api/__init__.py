"""
API package initialization.

This module initializes the HTTP API package for the Kitpack service.
"""
