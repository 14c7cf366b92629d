"""
Branch Ledger
=============
Dispatch ledger, collectible totals and manifest numbering for branch
cargo manifests (bills of lading).

Sub-packages:
- manifest: entries, items, dispatch ledger, monetary aggregation, numbering,
  document store access and report frames
"""

__version__ = '1.0.0'
