#!/usr/bin/env python3

import argparse
import csv
import ipaddress
import json
import logging
import sys

from pathlib import Path
from typing import TextIO, Optional, Iterable, Iterator, Sequence

import asn_codec
import asn_index
import update_files

from asn_records import Block, CodecError

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ('table', 'csv', 'json', 'puppet')
HEADER = ('Network', 'Country', 'AS Number', 'Owner', 'Matched IPs')

Group = tuple[Optional[Block], Optional[list[ipaddress.IPv4Address]]]


def read_csv_ips(fd: TextIO, delimiter: str = ',', column: int = 1, has_header: bool = False) -> Iterator[str]:
    reader = csv.reader(fd, delimiter=delimiter)
    if has_header:
        next(reader, None)

    for row in reader:
        if not row:
            continue
        if len(row) < column:
            raise ValueError(f'no column {column} in input row {row!r}')
        yield row[column - 1].strip()


def parse_ips(ips: Iterable[str]) -> list[ipaddress.IPv4Address]:
    return [ipaddress.IPv4Address(ip) for ip in ips]


def resolve(index: asn_index.Index, ips: Iterable[ipaddress.IPv4Address], matched_ips: bool = True) -> list[Group]:
    return [
        (block, addrs if matched_ips else None)
        for block, addrs in asn_index.group_lookups(index, ips)
    ]


def _row(block: Optional[Block], addrs: Optional[list[ipaddress.IPv4Address]]) -> tuple[str, ...]:
    return (
        str(block.network()) if block else '-',
        block.country if block else '-',
        str(block.as_number) if block else '-',
        block.owner if block else '-',
        ', '.join(map(str, addrs)) if addrs is not None else '-',
    )


def print_table(groups: Iterable[Group], out: TextIO) -> None:
    rows = [HEADER] + [_row(block, addrs) for block, addrs in groups]
    widths = [max(len(row[i]) for row in rows) for i in range(len(HEADER))]
    for row in rows:
        print(' '.join(cell.ljust(width) for cell, width in zip(row, widths)) + ' ', file=out)


def print_csv(groups: Iterable[Group], out: TextIO) -> None:
    writer = csv.writer(out, lineterminator='\n')
    writer.writerow(HEADER)
    writer.writerows(_row(block, addrs) for block, addrs in groups)


def print_json(groups: Iterable[Group], out: TextIO) -> None:
    for block, addrs in groups:
        print(json.dumps({
            'network': str(block.network()) if block else None,
            'country': block.country if block else None,
            'as_number': str(block.as_number) if block else None,
            'owner': block.owner if block else None,
            'matched_ips': [str(addr) for addr in addrs] if addrs is not None else None,
        }), file=out)


def print_puppet(groups: Iterable[Group], out: TextIO) -> None:
    for block, addrs in groups:
        if block:
            line = f"'{block.network()}', # {block.country} {block.as_number} {block.owner}"
            if addrs is not None:
                line += f" ({', '.join(map(str, addrs))})"
            print(line, file=out)
        elif addrs is not None:
            for addr in addrs:
                print(f"'{addr}', # Not found in the ASN DB", file=out)


printers = {
    'table': print_table,
    'csv': print_csv,
    'json': print_json,
    'puppet': print_puppet,
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description='Lookup IP addresses in the ASN database.')
    update_files.add_logging_args(parser)
    parser.add_argument('--database-cache-path', type=Path, help='path to the database cache file [default: user cache directory]')
    parser.add_argument('--input-csv-delimiter', default=',', help='input CSV delimiter')
    parser.add_argument('--input-csv-ip-column', type=int, default=1, help='input CSV column holding the IP (1-based)')
    parser.add_argument('--input-csv-header', action='store_true', help='skip the first row of CSV input read from stdin')
    parser.add_argument('-o', '--output', choices=OUTPUT_FORMATS, default='table', help='output format')
    parser.add_argument('-n', '--no-matched-ips', action='store_true', help="don't list matched IP addresses")
    parser.add_argument('ips', nargs='*', metavar='IP', help='IP addresses to lookup (read from stdin as CSV if none given; every row is an address unless --input-csv-header)')

    args = parser.parse_args(argv)
    if len(args.input_csv_delimiter) != 1:
        parser.error('--input-csv-delimiter needs to be exactly one character')
    if args.input_csv_ip_column < 1:
        parser.error('--input-csv-ip-column needs to be greater than 0')

    return args


def main(argv: Optional[Sequence[str]] = None, stdin: Optional[TextIO] = None, stdout: Optional[TextIO] = None) -> int:
    args = parse_args(argv)
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    update_files.setup_logging(args)

    db_file_path = args.database_cache_path or update_files.default_database_cache_path()
    logger.debug('loading database cache file from: %s', db_file_path)
    if not db_file_path.exists():
        logger.error("no database cache file found in '%s', please use asn-update to create one", db_file_path)
        return 2

    try:
        index = asn_codec.load_file(db_file_path)
    except CodecError as e:
        logger.error('failed to load database cache file: %s', e)
        return 1

    ip_strings = args.ips or read_csv_ips(stdin, args.input_csv_delimiter, args.input_csv_ip_column, args.input_csv_header)
    try:
        ips = parse_ips(ip_strings)
    except (ValueError, csv.Error) as e:
        logger.error('failed to parse lookup IP: %s', e)
        return 2

    groups = resolve(index, ips, matched_ips=not args.no_matched_ips)
    printers[args.output](groups, stdout)
    return 0


if __name__ == '__main__':
    sys.exit(main())
