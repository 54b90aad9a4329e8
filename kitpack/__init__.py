"""
Kitpack packing fulfillment engine.

Packs orders unit by unit against product kits of packaging components,
depleting component stock and recording every consumption in an append-only
usage ledger.
"""

__version__ = "1.0.0"
