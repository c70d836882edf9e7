"""Marker-keyed editing of shell startup files."""
from pathlib import Path
from typing import Optional


def ensure_line(path: Path, marker: str, line: str, header: Optional[str] = None) -> bool:
    """Make line the only line of path containing marker.

    The first line containing marker is replaced in place and any others are
    dropped; without one, header (if given) and line are appended. Returns
    True if path was created.
    """
    created = not path.exists()
    lines = [] if created else path.read_text().splitlines()

    found = [i for i, existing in enumerate(lines) if marker in existing]
    if found:
        lines[found[0]] = line
        for index in reversed(found[1:]):
            del lines[index]
    else:
        if lines and lines[-1].strip():
            lines.append("")
        if header:
            lines.append(header)
        lines.append(line)

    # Rewritten in place so the file keeps its owner.
    with open(path, "w") as f:
        f.write("\n".join(lines) + "\n")
    return created


def remove_lines(path: Path, *markers: str) -> int:
    """Drop every line of path containing one of markers; return the count."""
    if not path.exists():
        return 0
    lines = path.read_text().splitlines()
    kept = [line for line in lines if not any(marker in line for marker in markers)]
    removed = len(lines) - len(kept)
    if removed:
        with open(path, "w") as f:
            f.write("\n".join(kept) + "\n" if kept else "")
    return removed
