"""Conversion jobs: reader -> (tree -> selector) -> writer with atomic output.

- options.py: ConversionOptions (configuration surface of a job)
- output.py: atomic output files
- engine.py: convert(), load_tree(), write_tree()
"""

from .options import ConversionOptions
from .engine import ConversionResult, convert, load_tree, write_tree
