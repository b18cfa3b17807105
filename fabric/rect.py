"""
Rect Claims: Parsing + Geometry

A claim is an axis-aligned rectangle of unit squares on the fabric, read from
a line of the form:

    #123 @ 3,2: 5x4
    #ID  @ LEFT,TOP: WIDTHxHEIGHT

Coordinates are inclusive: a claim covers every unit square (px, py) with
x <= px <= right and y <= py <= bottom, where right = x + width - 1 and
bottom = y + height - 1.
"""

from dataclasses import dataclass
from typing import Iterable, Iterator, List, Optional, Tuple


class MalformedInput(ValueError):
    """
    A claim line that does not match '#<id> @ <x>,<y>: <w>x<h>'.

    Attributes:
        line: The original input line
        field: Offending field ("tokens", "id", "separator", "position", "size")
        reason: Human-readable description of the problem
    """

    def __init__(self, line: str, field: str, reason: str):
        self.line = line
        self.field = field
        self.reason = reason
        super().__init__(f"{field}: {reason} in line {line!r}")


@dataclass(frozen=True)
class Rect:
    """Axis-aligned claim with integer top-left origin and positive extents."""

    x: int
    y: int
    width: int
    height: int
    id: Optional[int] = None

    def __post_init__(self):
        if self.x < 0 or self.y < 0:
            raise ValueError(f"Rect origin must be non-negative, got ({self.x}, {self.y})")
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Rect extents must be positive, got {self.width}x{self.height}"
            )

    @property
    def right(self) -> int:
        """x of the right-most covered column (inclusive)."""
        return self.x + self.width - 1

    @property
    def bottom(self) -> int:
        """y of the bottom-most covered row (inclusive)."""
        return self.y + self.height - 1

    @property
    def area(self) -> int:
        return self.width * self.height


def _parse_uint(text: str) -> Optional[int]:
    # ASCII digits only: int() alone would accept '+3', ' 3' and '٣'
    if text.isascii() and text.isdigit():
        return int(text)
    return None


def _split_pair(text: str, sep: str) -> Optional[Tuple[int, int]]:
    parts = text.split(sep)
    if len(parts) != 2:
        return None
    a, b = _parse_uint(parts[0]), _parse_uint(parts[1])
    if a is None or b is None:
        return None
    return a, b


def parse_rect(line: str) -> Rect:
    """
    Parse a single claim line.

    Args:
        line: e.g. "#123 @ 3,2: 5x4" (any whitespace between tokens)

    Returns:
        Rect with id, x, y, width and height populated

    Raises:
        MalformedInput: wrong token count, bad field format, non-numeric
            field, or zero width/height
    """
    tokens = line.split()
    if len(tokens) != 4:
        raise MalformedInput(line, "tokens", f"expected 4 tokens, got {len(tokens)}")

    id_tok, at_tok, pos_tok, size_tok = tokens

    # Step 1: '#<digits>'
    if not id_tok.startswith("#"):
        raise MalformedInput(line, "id", f"expected '#<id>', got {id_tok!r}")
    claim_id = _parse_uint(id_tok[1:])
    if claim_id is None:
        raise MalformedInput(line, "id", f"non-numeric id {id_tok!r}")

    # Step 2: '@'
    if at_tok != "@":
        raise MalformedInput(line, "separator", f"expected '@', got {at_tok!r}")

    # Step 3: '<x>,<y>:'
    if not pos_tok.endswith(":"):
        raise MalformedInput(line, "position", f"expected '<x>,<y>:', got {pos_tok!r}")
    pos = _split_pair(pos_tok[:-1], ",")
    if pos is None:
        raise MalformedInput(line, "position", f"expected '<x>,<y>:', got {pos_tok!r}")

    # Step 4: '<w>x<h>'
    size = _split_pair(size_tok, "x")
    if size is None:
        raise MalformedInput(line, "size", f"expected '<w>x<h>', got {size_tok!r}")
    if size[0] == 0 or size[1] == 0:
        raise MalformedInput(line, "size", f"extents must be positive, got {size_tok!r}")

    x, y = pos
    width, height = size
    return Rect(x=x, y=y, width=width, height=height, id=claim_id)


def parse_rects(lines: Iterable[str]) -> List[Rect]:
    """
    Parse a batch of claim lines, skipping blank lines.

    The first malformed line aborts the whole batch (MalformedInput
    propagates); no partial list is returned.
    """
    return [parse_rect(line.rstrip("\r\n")) for line in lines if line.strip()]


def format_rect(rect: Rect) -> str:
    """Inverse of parse_rect."""
    if rect.id is None:
        raise ValueError("Cannot format a Rect without an id")
    return f"#{rect.id} @ {rect.x},{rect.y}: {rect.width}x{rect.height}"


def covered_squares(rect: Rect) -> Iterator[Tuple[int, int]]:
    """
    Yield every unit square (x, y) covered by rect, row-major.

    Exactly width * height unique pairs; calling again restarts.
    """
    for py in range(rect.y, rect.bottom + 1):
        for px in range(rect.x, rect.right + 1):
            yield px, py


def intersects(a: Rect, b: Rect) -> bool:
    """
    True iff a and b share at least one unit square.

    Inclusive bounds on both axes; symmetric in a and b.
    """
    return (
        a.x <= b.right
        and a.right >= b.x
        and a.y <= b.bottom
        and a.bottom >= b.y
    )


def intersection(a: Rect, b: Rect) -> Optional[Rect]:
    """
    Shared rectangle of a and b, or None if they do not intersect.

    The result carries no id.
    """
    if not intersects(a, b):
        return None

    x = max(a.x, b.x)
    y = max(a.y, b.y)
    return Rect(
        x=x,
        y=y,
        width=min(a.right, b.right) - x + 1,
        height=min(a.bottom, b.bottom) - y + 1,
    )
