from __future__ import annotations
import io
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, TextIO

from mapping2tiny.errors import MalformedStreamError, UnsupportedFormatError
from mapping2tiny.logger import get_logger
from mapping2tiny.visitor.contract import MappingVisitor
from . import enigma, proguard, tiny1, tiny2
from .archive import open_zip

log = get_logger("formats")

AUTODETECT = "autodetect"
ZIP_HEADER = b"PK\x03\x04"
TINY_ZIP_ENTRY = "mappings/mappings.tiny"
HEAD_SIZE = 4096

FILE, DIRECTORY, ANY = "file", "directory", "any"


@dataclass(frozen=True)
class FormatSpec:
    id: str
    # read(path, visitor, source_name, target_name)
    read: Callable[[Path, MappingVisitor, str, str], None]
    detect: Optional[Callable[[str], bool]] = None
    writer: Optional[Callable[[TextIO], MappingVisitor]] = None
    path_kind: str = FILE
    extension: str = ".tiny"


def _text_reader(parse, with_names: bool = False):
    def read(path: Path, visitor: MappingVisitor, source_name: str, target_name: str) -> None:
        with open(path, "r", encoding="utf-8") as fh:
            if with_names:
                parse(fh, visitor, source_name, target_name)
            else:
                parse(fh, visitor)
    return read


def read_tiny_zip(path: Path, visitor: MappingVisitor, source_name: str = "", target_name: str = "") -> None:
    """Read `mappings/mappings.tiny` from a jar/zip, sniffing v1 vs v2 from its first bytes."""
    with open_zip(path) as zf:
        try:
            data = zf.read(TINY_ZIP_ENTRY)
        except KeyError:
            raise FileNotFoundError(f"{path}!{TINY_ZIP_ENTRY}") from None
    text = data.decode("utf-8")
    if text.startswith("v1\t"):
        tiny1.read(io.StringIO(text), visitor)
    elif text.startswith("tin"):
        tiny2.read(io.StringIO(text), visitor)
    else:
        raise MalformedStreamError(f"unknown format for {TINY_ZIP_ENTRY} in {path}")


FORMATS: Dict[str, FormatSpec] = {
    spec.id: spec
    for spec in (
        FormatSpec("tiny1", _text_reader(tiny1.read), tiny1.detect, tiny1.Tiny1Writer),
        FormatSpec("tiny2", _text_reader(tiny2.read), tiny2.detect, tiny2.Tiny2Writer),
        FormatSpec("proguard", _text_reader(proguard.read, with_names=True), proguard.detect,
                   extension=".txt"),
        FormatSpec("enigma", enigma.read, enigma.detect, path_kind=ANY, extension=".mapping"),
        FormatSpec("enigma_zip", enigma.read_zip, extension=".zip"),
        FormatSpec("tiny_zip", read_tiny_zip, extension=".jar"),
    )
}

# Order matters: content sniffing tries these in turn
_SNIFF_ORDER = ("tiny2", "tiny1", "enigma", "proguard")


def format_ids() -> List[str]:
    return list(FORMATS)


def writer_ids() -> List[str]:
    return [f.id for f in FORMATS.values() if f.writer is not None]


def get_format(format_id: Optional[str]) -> Optional[FormatSpec]:
    """Format by id; None (autodetect) for None, "autodetect" or unknown ids."""
    if not format_id or format_id == AUTODETECT:
        return None
    spec = FORMATS.get(format_id)
    if spec is None:
        log.warning(f"unknown format {format_id!r}, falling back to autodetection")
    return spec


def is_zip(path: Path) -> bool:
    with open(path, "rb") as fh:
        return fh.read(4) == ZIP_HEADER


def detect_format(path: Path) -> FormatSpec:
    path = Path(path)
    if path.is_dir():
        return FORMATS["enigma"]
    if is_zip(path):
        with open_zip(path) as zf:
            names = zf.namelist()
        if TINY_ZIP_ENTRY in names:
            return FORMATS["tiny_zip"]
        return FORMATS["enigma_zip"]
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        head = fh.read(HEAD_SIZE)
    for fid in _SNIFF_ORDER:
        if FORMATS[fid].detect(head):
            return FORMATS[fid]
    raise UnsupportedFormatError(f"cannot detect the mapping format of {path}")


def _check_path_kind(spec: FormatSpec, path: Path) -> None:
    if spec.path_kind == ANY:
        return
    if path.is_dir() != (spec.path_kind == DIRECTORY):
        raise UnsupportedFormatError(f"path {path} doesn't match the directory rule of {spec.id}")


def read_mapping(path: Path, visitor: MappingVisitor, format_id: Optional[str] = None,
                 source_name: str = "source", target_name: str = "target") -> FormatSpec:
    """Read `path` into `visitor`, detecting the format unless one is given."""
    path = Path(path)
    spec = get_format(format_id)
    if spec is None:
        spec = detect_format(path)
        log.info(f"detected {spec.id} mappings in {path}")
    else:
        _check_path_kind(spec, path)
    spec.read(path, visitor, source_name, target_name)
    return spec


def create_writer(format_id: str, out: TextIO) -> MappingVisitor:
    spec = FORMATS.get(format_id)
    if spec is None or spec.writer is None:
        raise UnsupportedFormatError(f"no writer for format {format_id!r}; choose one of {writer_ids()}")
    return spec.writer(out)
