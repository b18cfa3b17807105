import json

import numpy as np
import pytest

from fabric.overlap import build_coverage
from fabric.receipts import (
    ReceiptWriter,
    build_overlap_receipt,
    find_receipt,
    read_receipts,
    sha256_coverage,
    sha256_ndarray,
    write_jsonl,
)
from fabric.rect import Rect, parse_rects


@pytest.fixture
def scenario():
    return parse_rects(["#1 @ 1,3: 4x4", "#2 @ 3,1: 4x4", "#3 @ 5,5: 2x2"])


def test_sha256_is_deterministic(scenario):
    assert sha256_coverage(build_coverage(scenario)) == sha256_coverage(build_coverage(scenario))


def test_sha256_coverage_depends_on_counts(scenario):
    assert sha256_coverage(build_coverage(scenario)) != sha256_coverage(build_coverage(scenario[:2]))


def test_sha256_depends_on_shape():
    assert sha256_ndarray(np.zeros((0, 5))) != sha256_ndarray(np.zeros((5, 0)))


def test_build_overlap_receipt(scenario):
    coverage = build_coverage(scenario)
    receipt = build_overlap_receipt("claims.txt", scenario, coverage)
    assert receipt["source"] == "claims.txt"
    assert receipt["num_rects"] == 3
    # Bands at x, y in {1, 3, 5, 7}
    assert (receipt["H"], receipt["W"]) == (3, 3)
    assert receipt["total_area"] == 36
    assert receipt["overlap_area"] == 4
    assert receipt["isolated_found"] is True
    assert receipt["isolated_id"] == 3
    assert receipt["pass_isolated_grid"] is True
    assert receipt["max_occupancy"] == 2
    assert receipt["contested_regions"] == 1
    assert "overlap_area_pairwise" not in receipt


def test_build_overlap_receipt_cross_check(scenario):
    receipt = build_overlap_receipt("claims.txt", scenario, build_coverage(scenario), cross_check=True)
    assert receipt["overlap_area_pairwise"] == 4
    assert receipt["pass_cross_check"] is True


def test_receipt_without_isolated_claim():
    rects = [Rect(0, 0, 2, 2, id=1), Rect(1, 1, 2, 2, id=2)]
    receipt = build_overlap_receipt("x", rects, build_coverage(rects))
    assert receipt["isolated_found"] is False
    assert receipt["isolated_id"] is None
    assert receipt["pass_isolated_grid"] is True


def test_receipt_isolated_claim_without_id():
    rects = [Rect(0, 0, 2, 2), Rect(1, 1, 2, 2), Rect(8, 8, 1, 1)]
    receipt = build_overlap_receipt("x", rects, build_coverage(rects))
    assert receipt["isolated_found"] is True
    assert receipt["isolated_id"] is None
    assert receipt["pass_isolated_grid"] is True


def test_receipt_for_widely_spaced_claims():
    rects = parse_rects(["#1 @ 0,0: 1x1", "#2 @ 3000000,3000000: 1x1"])
    receipt = build_overlap_receipt("far", rects, build_coverage(rects), cross_check=True)
    assert receipt["overlap_area"] == 0
    assert receipt["pass_cross_check"] is True
    assert receipt["contested_regions"] == 0


def test_receipt_is_json_serializable(scenario):
    receipt = build_overlap_receipt("claims.txt", scenario, build_coverage(scenario), cross_check=True)
    assert json.loads(json.dumps(receipt)) == receipt


def test_write_and_read_jsonl(tmp_path):
    out = tmp_path / "nested" / "receipts.jsonl"
    written = write_jsonl(out, [{"source": "a", "overlap_area": 1}, {"source": "b", "overlap_area": 2}])
    assert written == 2
    assert out.read_text(encoding="utf-8").count("\n") == 2
    receipts = read_receipts(out)
    assert [r["source"] for r in receipts] == ["a", "b"]
    assert find_receipt(out, "b")["overlap_area"] == 2
    assert find_receipt(out, "missing") is None


def test_append_keeps_earlier_receipts(tmp_path):
    out = tmp_path / "receipts.jsonl"
    write_jsonl(out, [{"source": "a", "overlap_area": 1}])
    assert write_jsonl(out, [{"source": "a", "overlap_area": 5}], append=True) == 1
    assert len(read_receipts(out)) == 2
    # Latest run wins
    assert find_receipt(out, "a")["overlap_area"] == 5


def test_read_receipts_reports_corrupt_line(tmp_path):
    out = tmp_path / "receipts.jsonl"
    out.write_text('{"source": "a"}\n\n{"source": \n', encoding="utf-8")
    with pytest.raises(ValueError, match=r"receipts\.jsonl:3: corrupt receipt"):
        read_receipts(out)


def test_read_receipts_rejects_non_object(tmp_path):
    out = tmp_path / "receipts.jsonl"
    out.write_text('[1, 2]\n', encoding="utf-8")
    with pytest.raises(ValueError, match=r":1: receipt is not a JSON object"):
        read_receipts(out)


def test_receipt_writer_requires_context(tmp_path):
    writer = ReceiptWriter(tmp_path / "r.jsonl")
    with pytest.raises(RuntimeError):
        writer.write({"source": "a"})


def test_receipt_writer_requires_source(tmp_path):
    with ReceiptWriter(tmp_path / "r.jsonl") as writer:
        with pytest.raises(ValueError):
            writer.write({"overlap_area": 1})
        assert writer.count == 0
