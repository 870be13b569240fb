"""
General-purpose utilities for sqlblob.
"""

from __future__ import annotations

from pathlib import Path


def safe_write(filepath: str | Path, blob: bytes, *, overwrite: bool = False) -> None:
    """
    Write a file atomically: the data goes to a temporary sibling first, which then
    replaces the target. An existing file is left alone unless overwrite is set.
    """
    filepath = Path(filepath)
    if overwrite or not filepath.is_file():
        filepath.parent.mkdir(parents=True, exist_ok=True)
        temp_file = filepath.with_suffix(filepath.suffix + ".saving")
        temp_file.write_bytes(blob)
        temp_file.replace(filepath)


def subfold(name: str, folds: tuple[int, ...]) -> tuple[str, ...]:
    """
    subfolding for file storage:   e.g.  subfold('aBCdefg', (2, 3))  -->  ('ab','cde')
    """
    return (name[: folds[0]].lower(),) + subfold(name[folds[0] :], folds[1:]) if folds else ()
