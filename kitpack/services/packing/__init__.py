"""
Packing service package initialization.

Holds the progress reconstructor, packing sessions, the undo manager, the
storage port and the packing service built on top of them.
"""
