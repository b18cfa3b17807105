"""
Overlap Receipts: Schema + Writer

Provides helpers for writing receipts in JSONL format.
Each line is a complete JSON object representing one claims file's receipt.

One JSONL line per claims file (not per claim).
"""

import hashlib
import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import numpy as np

from fabric.overlap import (
    Coverage,
    contested_regions,
    covered_area_overlap_pairwise,
    find_isolated,
    isolated_on_grid,
    max_occupancy,
    overlap_area,
)
from fabric.rect import Rect


def sha256_ndarray(grid: np.ndarray) -> str:
    """
    Compute a deterministic SHA256 hash of a grid.

    Shape is hashed along with the bytes so that (0, 5) and (5, 0) differ.

    Args:
        grid: NumPy array of shape (H, W)

    Returns:
        Hex SHA256 hash string (64 chars)
    """
    grid = np.ascontiguousarray(grid, dtype=np.int64)
    h = hashlib.sha256()
    h.update(repr(grid.shape).encode('utf-8'))
    h.update(grid.tobytes())
    return h.hexdigest()


def sha256_coverage(coverage: Coverage) -> str:
    """Hash of a coverage: band edges on both axes plus the counts."""
    parts = [sha256_ndarray(coverage.xs), sha256_ndarray(coverage.ys), sha256_ndarray(coverage.counts)]
    return hashlib.sha256(':'.join(parts).encode('utf-8')).hexdigest()


def build_overlap_receipt(
    source: str,
    rects: Sequence[Rect],
    coverage: Coverage,
    cross_check: bool = False,
) -> Dict[str, Any]:
    """
    Build a receipt dict for one claims file.

    Args:
        source: Identifier of the claims input (usually its path)
        rects: Parsed claims
        coverage: Coverage built from rects
        cross_check: Also run the pairwise strategy and compare areas

    Returns:
        Receipt dict with overlap area, isolated claim and grid checks
    """
    H, W = coverage.shape
    area = overlap_area(coverage)
    isolated = find_isolated(rects)

    # The pairwise and grid views of isolation must agree
    if isolated is None:
        pass_isolated_grid = not any(isolated_on_grid(coverage, r) for r in rects)
    else:
        pass_isolated_grid = isolated_on_grid(coverage, isolated)

    receipt = {
        "source": source,
        "num_rects": len(rects),
        "H": H,
        "W": W,
        "total_area": int(sum(r.area for r in rects)),
        "overlap_area": area,
        "isolated_found": isolated is not None,
        "isolated_id": None if isolated is None else isolated.id,
        "pass_isolated_grid": pass_isolated_grid,
        "max_occupancy": max_occupancy(coverage),
        "contested_regions": contested_regions(coverage),
        "sha256_coverage": sha256_coverage(coverage),
    }

    if cross_check:
        pairwise = covered_area_overlap_pairwise(rects)
        receipt["overlap_area_pairwise"] = pairwise
        receipt["pass_cross_check"] = (pairwise == area)

    return receipt


def write_jsonl(out_path: Path, receipts: Iterable[Dict[str, Any]], append: bool = False) -> int:
    """
    Write receipts to out_path, one JSON object per line.

    Returns:
        Number of receipts written
    """
    with ReceiptWriter(out_path, append=append) as writer:
        for receipt in receipts:
            writer.write(receipt)
    return writer.count


class ReceiptWriter:
    """
    JSONL writer for overlap receipts.

    Every receipt must name its claims source; the writer counts what it
    has written so the harness can report it.
    """

    def __init__(self, output_path: Path, append: bool = False):
        self.output_path = Path(output_path)
        self.output_path.parent.mkdir(parents=True, exist_ok=True)
        self.mode = 'a' if append else 'w'
        self.file_handle = None
        self.count = 0

    def __enter__(self):
        self.file_handle = open(self.output_path, self.mode, encoding='utf-8')
        self.count = 0
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.file_handle:
            self.file_handle.close()
            self.file_handle = None

    def write(self, receipt: Dict[str, Any]):
        if not self.file_handle:
            raise RuntimeError("ReceiptWriter not opened (use context manager)")
        if "source" not in receipt:
            raise ValueError("Receipt has no 'source' field")

        self.file_handle.write(json.dumps(receipt, sort_keys=True, ensure_ascii=False))
        self.file_handle.write('\n')
        self.count += 1


def read_receipts(receipts_path: Path) -> List[Dict[str, Any]]:
    """
    Read all receipts from a JSONL file, skipping blank lines.

    Args:
        receipts_path: Path to receipts.jsonl

    Returns:
        List of receipt dictionaries in file order

    Raises:
        ValueError: naming path and 1-based line number of the first line
            that is not a JSON object
    """
    receipts = []
    with open(receipts_path, 'r', encoding='utf-8') as f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                receipt = json.loads(line)
            except json.JSONDecodeError as e:
                raise ValueError(f"{receipts_path}:{lineno}: corrupt receipt: {e.msg}") from e
            if not isinstance(receipt, dict):
                raise ValueError(f"{receipts_path}:{lineno}: receipt is not a JSON object")
            receipts.append(receipt)
    return receipts


def find_receipt(receipts_path: Path, source: str) -> Optional[Dict[str, Any]]:
    """Last receipt recorded for source (appended runs override earlier ones), or None."""
    found = None
    for receipt in read_receipts(receipts_path):
        if receipt.get("source") == source:
            found = receipt
    return found
