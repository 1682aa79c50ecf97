#!/usr/bin/env python3

import argparse
import gzip
import io
import logging
import os
import sys
import zlib

from pathlib import Path
from typing import TextIO, Optional, Mapping, Sequence
from urllib.parse import urlparse

import requests

import asn_codec
import asn_index
import parse_ip2asn_file

from asn_records import BuildError, CodecError

logger = logging.getLogger(__name__)

APP_NAME = 'asn_tools'
DEFAULT_DATA_FILE = 'asn-db.dat'
DEFAULT_TSV_URL = 'https://iptoasn.com/data/ip2asn-v4.tsv.gz'
FETCH_TIMEOUT = 120.0


class FetchError(Exception):
    pass


def default_database_cache_path(environ: Optional[Mapping[str, str]] = None) -> Path:
    if environ is None:
        environ = os.environ

    cache_dir = environ.get('ASN_TOOLS_CACHE_DIR') or environ.get('XDG_CACHE_HOME')
    base = Path(cache_dir) if cache_dir else Path.home() / '.cache'

    return base / APP_NAME / 'asn_records' / DEFAULT_DATA_FILE


def is_url(location: str) -> bool:
    return urlparse(location).scheme in ('http', 'https')


def fetch_tsv(url: str, timeout: float = FETCH_TIMEOUT) -> TextIO:
    try:
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f'failed to fetch {url}: {e}') from e

    try:
        text = gzip.decompress(response.content).decode('utf-8')
    except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise FetchError(f'failed to decode {url}: {e}') from e

    return io.StringIO(text)


def open_tsv(path: Path) -> TextIO:
    if path.suffix == '.gz':
        return gzip.open(path, 'rt', encoding='utf-8')

    return open(path, encoding='utf-8')


def check_cache_db(db_file_path: Path) -> None:
    if db_file_path.exists() and not db_file_path.is_file():
        raise IsADirectoryError(f'{db_file_path} is not a file')


def update_database(db_file_path: Path, tsv_location: str = DEFAULT_TSV_URL, min_prefix_len: int = parse_ip2asn_file.DEFAULT_MIN_PREFIX_LEN) -> asn_index.Index:
    if is_url(tsv_location):
        logger.info('loading ip2asn database from TSV located at: %s', tsv_location)
        fd = fetch_tsv(tsv_location)
    else:
        logger.info('loading ip2asn database from TSV file: %s', tsv_location)
        fd = open_tsv(Path(tsv_location))

    try:
        with fd:
            index = parse_ip2asn_file.build_from_tsv(fd, min_prefix_len)
    except (gzip.BadGzipFile, EOFError, zlib.error, UnicodeDecodeError) as e:
        raise FetchError(f'failed to read {tsv_location}: {e}') from e

    logger.info('updating cached database file: %s', db_file_path)
    check_cache_db(db_file_path)
    db_file_path.parent.mkdir(parents=True, exist_ok=True)
    asn_codec.store_file(index, db_file_path)

    logger.info('update done')
    return index


def add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument('-v', '--verbose', action='count', default=0, help='more logging (repeat for debug)')
    parser.add_argument('-q', '--quiet', action='store_true', help='only log errors')


def setup_logging(args: argparse.Namespace) -> None:
    if args.quiet:
        level = logging.ERROR
    elif args.verbose >= 2:
        level = logging.DEBUG
    elif args.verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING

    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Downloads the latest ip2asn TSV file and caches it for use by the lookup tool.')
    add_logging_args(parser)
    parser.add_argument('--database-cache-path', type=Path, help='path to the database cache file to update [default: user cache directory]')
    parser.add_argument('--ip2asn-tsv-location', dest='tsv_location', default=DEFAULT_TSV_URL, help='file path or HTTP URL to TSV file to build cache from')
    parser.add_argument('--min-prefix-len', type=int, default=parse_ip2asn_file.DEFAULT_MIN_PREFIX_LEN, help='never emit networks larger than this prefix length')

    args = parser.parse_args(argv)
    if not 0 <= args.min_prefix_len <= 32:
        parser.error('--min-prefix-len must be between 0 and 32')

    return args


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    setup_logging(args)

    db_file_path = args.database_cache_path or default_database_cache_path()

    try:
        update_database(db_file_path, args.tsv_location, args.min_prefix_len)
    except (FetchError, BuildError, CodecError, OSError) as e:
        logger.error('%s', e)
        return 1

    return 0


if __name__ == '__main__':
    sys.exit(main())
