"""
Services package initialization.

This module makes the services directory a Python package. Service modules
are imported directly from their subpackages.
"""
