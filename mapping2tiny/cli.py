"""Command line front end: convert mapping files to Tiny.

Usage: python -m mapping2tiny [-f FORMAT] [-1|-2] -o OUTPUT INPUT [INPUT ...]
"""

from __future__ import annotations
import argparse
import os
import sys
import tempfile
from pathlib import Path
from typing import List, Optional

import requests

from mapping2tiny import __version__
from mapping2tiny.config.env import get_converter_config
from mapping2tiny.conversion import ConversionOptions, convert
from mapping2tiny.errors import MappingError
from mapping2tiny.formats.registry import AUTODETECT, format_ids
from mapping2tiny.logger import get_logger, initialize_logger
from mapping2tiny.tree.model import ConflictPolicy

DOWNLOAD_TIMEOUT = 60


def build_parser() -> argparse.ArgumentParser:
    cfg = get_converter_config()
    parser = argparse.ArgumentParser(
        prog="mapping2tiny",
        description="Convert JVM name mappings (tiny v1/v2, proguard, enigma) to tiny.",
    )
    parser.add_argument("inputs", nargs="+", metavar="INPUT",
                        help="mapping file, enigma directory, zip/jar, or URL with --download")
    parser.add_argument("-o", "--output", required=True, type=Path, help="output file")
    parser.add_argument("-f", "--from", dest="input_format", default=AUTODETECT,
                        help=f"input format: {'|'.join(format_ids() + [AUTODETECT])} (default: autodetect)")
    out = parser.add_mutually_exclusive_group()
    out.add_argument("-1", "--tiny1", dest="output_format", action="store_const", const="tiny1",
                     help="write tiny v1")
    out.add_argument("-2", "--tiny2", dest="output_format", action="store_const", const="tiny2",
                     help="write tiny v2 (default)")
    parser.add_argument("-c", "--default-source-name", default=cfg.source_namespace,
                        help="source namespace name for proguard/enigma input")
    parser.add_argument("-e", "--default-target-name", default=cfg.target_namespace,
                        help="target namespace name for proguard/enigma input")
    parser.add_argument("-w", "--download", action="store_true", help="treat inputs as URLs and download them")
    parser.add_argument("-n", "--namespaces", nargs="+", metavar="NS", help="output namespaces, in order")
    parser.add_argument("--fallback", nargs="+", metavar="NS", default=[],
                        help="namespaces consulted in order when the primary name is missing")
    parser.add_argument("--primary", metavar="NS", help="primary output namespace (default: first)")
    parser.add_argument("--policy", choices=[p.value for p in ConflictPolicy], default=ConflictPolicy.STRICT.value,
                        help="how repeated definitions are reconciled while reading")
    parser.add_argument("--strict-remap", action="store_true",
                        help="fail on descriptor classes without a mapping instead of keeping them")
    parser.add_argument("--sort", action="store_true", help="sort classes and members by source name")
    parser.add_argument("-j", "--workers", type=int, default=cfg.workers, help="worker threads")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    parser.add_argument("--log-file", type=Path, help="also log to this file")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def download(url: str) -> Path:
    fd, tmp = tempfile.mkstemp(prefix="Mapping2Tiny-", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as fh:
            with requests.get(url, stream=True, timeout=DOWNLOAD_TIMEOUT) as resp:
                resp.raise_for_status()
                for chunk in resp.iter_content(chunk_size=1 << 16):
                    fh.write(chunk)
    except Exception:
        os.unlink(tmp)
        raise
    return Path(tmp)


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    initialize_logger("DEBUG" if args.verbose else None, args.log_file)
    log = get_logger("cli")

    options = ConversionOptions(
        input_format=args.input_format,
        output_format=args.output_format or get_converter_config().output_format,
        namespaces=tuple(args.namespaces) if args.namespaces else None,
        fallback=tuple(args.fallback),
        primary=args.primary,
        policy=ConflictPolicy(args.policy),
        strict_remap=args.strict_remap,
        sort=args.sort,
        source_name=args.default_source_name,
        target_name=args.default_target_name,
        workers=args.workers,
    )

    downloaded: List[Path] = []
    try:
        inputs: List[Path] = []
        for item in args.inputs:
            if args.download:
                try:
                    path = download(item)
                except requests.RequestException as e:
                    raise OSError(f"Failed to download {item}: {e}") from e
                downloaded.append(path)
                inputs.append(path)
            else:
                inputs.append(Path(item))
        convert(inputs, args.output, options)
    except (MappingError, OSError, ValueError) as e:
        log.error(str(e))
        print(f"mapping2tiny: error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        log.debug("unexpected conversion failure", exc_info=True)
        print(f"mapping2tiny: error: unexpected {type(e).__name__}: {e}", file=sys.stderr)
        return 1
    finally:
        for path in downloaded:
            path.unlink(missing_ok=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
