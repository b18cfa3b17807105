"""
Claims Harness + Receipts Runner

Deterministic runner that loads claim lines and prints or records answers.

Modes:
  - overlap: number of squares claimed two or more times
  - isolated: id of the claim that overlaps no other claim
  - receipts: one JSONL receipt per claims file
  - audit: print a stored receipt

CLI:
  python -m fabric.solve --mode overlap --claims path/to/claims.txt
  python -m fabric.solve --mode isolated --claims path/to/claims.txt --unknown NONE
  python -m fabric.solve --mode receipts --claims a.txt --claims b.txt --out outputs/receipts.jsonl --cross-check
  python -m fabric.solve --mode audit --receipts outputs/receipts.jsonl --source a.txt
"""

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from fabric.overlap import build_coverage, covered_area_overlap, find_isolated
from fabric.receipts import build_overlap_receipt, find_receipt, write_jsonl
from fabric.rect import MalformedInput, Rect, parse_rects

NOT_FOUND_TEXT = "UNKNOWN"


def load_rects_from_file(path: Path) -> List[Rect]:
    """
    Load claims from a text file, one claim per line.

    Args:
        path: Path to claims file

    Returns:
        Parsed claims in file order

    Raises:
        MalformedInput: on the first bad line (whole file rejected)
    """
    with open(path, 'r', encoding='utf-8') as f:
        return parse_rects(f)


def _load_or_exit(path: Path) -> List[Rect]:
    if path is None or not path.exists():
        logging.error(f"Claims file not found or not specified: {path}")
        raise SystemExit(1)
    try:
        return load_rects_from_file(path)
    except MalformedInput as e:
        logging.error(f"Malformed claim in {path}: {e}")
        raise SystemExit(1)
    except (UnicodeDecodeError, OSError) as e:
        logging.error(f"Cannot read claims file {path}: {e}")
        raise SystemExit(1)


def run_overlap(path: Path) -> None:
    rects = _load_or_exit(path)
    area = covered_area_overlap(rects)
    logging.debug(f"claims={len(rects)}, overlap_area={area}")
    print(area)


def run_isolated(path: Path, unknown: str = NOT_FOUND_TEXT) -> None:
    rects = _load_or_exit(path)
    isolated = find_isolated(rects)
    logging.debug(f"claims={len(rects)}, isolated={isolated}")
    print(unknown if isolated is None else isolated.id)


def run_receipts(
    paths: List[Path],
    out_path: Path,
    cross_check: bool = False,
    append: bool = False,
) -> None:
    """
    Run receipts mode.

    For each claims file:
      - Parse all claims (one bad line rejects the whole run)
      - Build the coverage grid once
      - Record overlap area, isolated id and grid checks
      - Write one JSONL line per file

    Args:
        paths: Claims files
        out_path: Output path for receipts JSONL file
        cross_check: Also compute the pairwise overlap area
        append: Add to out_path instead of replacing it
    """
    if out_path is None:
        logging.error("Receipts mode requires --out")
        raise SystemExit(1)

    # Parse everything first so a bad file emits no receipts at all
    batches = [(path, _load_or_exit(path)) for path in paths]

    receipts: List[Dict[str, Any]] = []

    # Counters for summary
    total_rects = 0
    isolated_found = 0
    cross_check_fail = 0
    grid_check_fail = 0

    for path, rects in batches:
        coverage = build_coverage(rects)
        receipt = build_overlap_receipt(
            source=str(path),
            rects=rects,
            coverage=coverage,
            cross_check=cross_check,
        )
        receipts.append(receipt)

        total_rects += receipt["num_rects"]
        if receipt["isolated_found"]:
            isolated_found += 1
        if not receipt["pass_isolated_grid"]:
            grid_check_fail += 1
        if cross_check and not receipt["pass_cross_check"]:
            cross_check_fail += 1

    written = write_jsonl(out_path, receipts, append=append)

    logging.info(
        f"Processed files={len(batches)}, claims={total_rects}, receipts={written}, "
        f"isolated_found={isolated_found}, grid_check_fail={grid_check_fail}, "
        f"cross_check_fail={cross_check_fail}"
    )


def run_audit(source: str, receipts_path: Path) -> None:
    """Print the receipt recorded for source."""
    if receipts_path is None or not receipts_path.exists():
        logging.error(f"Receipts file not found or not specified: {receipts_path}")
        raise SystemExit(1)

    try:
        receipt = find_receipt(receipts_path, source)
    except (ValueError, OSError) as e:
        logging.error(f"Cannot read receipts: {e}")
        raise SystemExit(1)
    if receipt is None:
        logging.error(f"Source {source} not found in receipts")
        raise SystemExit(1)
    print(json.dumps(receipt, indent=2, sort_keys=True))


def main(argv: List[str] = None) -> None:
    """CLI entry point with argparse."""
    parser = argparse.ArgumentParser(
        description="Fabric claim overlap engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--mode",
        type=str,
        required=True,
        choices=["overlap", "isolated", "receipts", "audit"],
        help="overlap (contested area), isolated (untouched claim id), receipts (JSONL per file), or audit (receipt lookup)",
    )

    parser.add_argument(
        "--claims",
        type=Path,
        action="append",
        help="Path to a claims file; repeat for several files in receipts mode",
    )

    parser.add_argument(
        "--out",
        type=Path,
        help="Output path for receipts JSONL file (receipts mode)",
    )

    parser.add_argument(
        "--cross-check",
        action="store_true",
        help="Also compute the overlap area pairwise and record agreement (receipts mode)",
    )

    parser.add_argument(
        "--append",
        action="store_true",
        help="Append to --out instead of overwriting it (receipts mode)",
    )

    parser.add_argument(
        "--unknown",
        type=str,
        default=NOT_FOUND_TEXT,
        help="Text printed when no isolated claim exists (isolated mode)",
    )

    parser.add_argument(
        "--receipts",
        type=Path,
        help="Receipts JSONL to read (audit mode)",
    )

    parser.add_argument(
        "--source",
        type=str,
        help="Claims source to look up (audit mode)",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Log DEBUG detail",
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
    )

    claims = args.claims or []

    if args.mode in ("overlap", "isolated") and len(claims) != 1:
        logging.error(f"Mode {args.mode} takes exactly one --claims file, got {len(claims)}")
        raise SystemExit(1)

    # Run requested mode
    if args.mode == "overlap":
        run_overlap(claims[0])
    elif args.mode == "isolated":
        run_isolated(claims[0], unknown=args.unknown)
    elif args.mode == "receipts":
        if not claims:
            logging.error("Receipts mode requires at least one --claims file")
            raise SystemExit(1)
        run_receipts(
            paths=claims,
            out_path=args.out,
            cross_check=args.cross_check,
            append=args.append,
        )
    elif args.mode == "audit":
        run_audit(
            source=args.source,
            receipts_path=args.receipts,
        )


if __name__ == "__main__":
    main()
