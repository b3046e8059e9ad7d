"""Three-part versions as written into savefiles."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = ["Version", "version_cmp"]


@dataclass(frozen=True, order=True)
class Version:
    """A version made of major, minor and revision numbers, each 0 to 255."""

    major: int
    minor: int
    revision: int

    def __post_init__(self) -> None:
        for name in ("major", "minor", "revision"):
            part = getattr(self, name)
            if not isinstance(part, int) or not 0 <= part <= 255:
                raise ValueError(f"version {name} must be an integer in 0..255, got {part!r}")

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.revision}"


def version_cmp(v1: Version, v2: Version) -> int:
    """Return 1, 0 or -1 as ``v1`` is greater than, equal to or less than ``v2``."""
    left = (v1.major, v1.minor, v1.revision)
    right = (v2.major, v2.minor, v2.revision)
    return (left > right) - (left < right)