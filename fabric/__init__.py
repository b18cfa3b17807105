"""
Fabric Claim Overlap Engine
Counts contested squares of fabric and finds the one claim nobody else touches.

Modules:
- rect: Rect claims - parsing, covered squares, inclusive intersection
- overlap: occupancy-count coverage grid, overlap area, isolated claim
- receipts: SHA256 + JSONL receipt writer
- solve: CLI harness over claims files
"""

__version__ = "0.1.0"
