from __future__ import annotations
import contextlib
import zipfile
from pathlib import Path
from typing import Iterator

from mapping2tiny.errors import MalformedStreamError


@contextlib.contextmanager
def open_zip(path: Path) -> Iterator[zipfile.ZipFile]:
    """Open a zip/jar for reading; a corrupt archive raises MalformedStreamError."""
    try:
        zf = zipfile.ZipFile(path)
    except zipfile.BadZipFile as e:
        raise MalformedStreamError(f"{path}: not a valid zip archive ({e})", key=str(path)) from e
    with zf:
        yield zf
