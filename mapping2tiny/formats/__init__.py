"""Mapping formats.

- tiny2.py: Tiny v2 reader and canonical writer
- tiny1.py: Tiny v1 reader and writer
- proguard.py: ProGuard/R8 reader
- enigma.py: Enigma reader (file, directory, zip)
- archive.py: zip access shared by the zip readers
- registry.py: format table, autodetection and reader/writer lookup
"""

from .registry import FORMATS, FormatSpec, create_writer, detect_format, get_format, read_mapping
