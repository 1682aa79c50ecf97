#!/usr/bin/env python3

import ipaddress
import logging

from typing import TextIO, Optional, Any, Iterable, Iterator, Generator, Mapping

import asn_records
import asn_index

from asn_records import RawRange, Block, SourceParseError, BuildError, MAX_PREFIX_LEN

logger = logging.getLogger(__name__)

FIELDS = ('range_start_ip', 'range_end_ip', 'as_number', 'country_code', 'owner_name')
UNROUTED_OWNERS = frozenset(('Not routed', 'None'))
DEFAULT_MIN_PREFIX_LEN = 8


def get_host_max_len(ip: int) -> int:
    '''Get maximum possible subnet size (in host bits) starting at the given IPv4 address'''
    if not ip:
        return MAX_PREFIX_LEN

    return (ip & -ip).bit_length() - 1


def ipv4_range_to_subnets(start: int, end: int, min_prefix_len: int = DEFAULT_MIN_PREFIX_LEN) -> Generator[tuple[int, int], None, None]:
    '''
    Given an inclusive range of IPv4 addresses as integers,
    generate the minimal set of (base, prefix_len) subnets to exactly cover only those hosts,
    never emitting a subnet shorter than min_prefix_len
    '''
    if not 0 <= min_prefix_len <= MAX_PREFIX_LEN:
        raise ValueError(f'min_prefix_len out of range: {min_prefix_len}')

    max_host_bits = MAX_PREFIX_LEN - min_prefix_len
    current_start = start
    while current_start <= end:
        num = end - current_start + 1
        subnet_bits = min(
            num.bit_length() - 1,
            get_host_max_len(current_start),
            max_host_bits,
        )
        yield current_start, MAX_PREFIX_LEN - subnet_bits

        current_start += 1 << subnet_bits


def normalize(
        raw_range: RawRange,
        min_prefix_len: int = DEFAULT_MIN_PREFIX_LEN,
        annotation: Optional[Mapping[str, Any]] = None) -> Iterator[Block]:
    if annotation is None:
        annotation = asn_records.make_annotation(raw_range.as_number, raw_range.country, raw_range.owner)

    return (
        Block(base, prefix_len, annotation)
        for base, prefix_len in ipv4_range_to_subnets(raw_range.start, raw_range.end, min_prefix_len)
    )


def is_routed(raw_range: RawRange) -> bool:
    return raw_range.owner not in UNROUTED_OWNERS


def _parse_ip(field: str, value: str, line_num: Optional[int]) -> int:
    try:
        return int(ipaddress.IPv4Address(value))
    except ipaddress.AddressValueError as e:
        raise SourceParseError(field, value, str(e), line_num) from e


def _parse_as_number(value: str, line_num: Optional[int]) -> int:
    try:
        as_number = int(value)
    except ValueError as e:
        raise SourceParseError('as_number', value, 'not an integer', line_num) from e

    if not 0 <= as_number <= 0xffffffff:
        raise SourceParseError('as_number', value, 'out of 32-bit range', line_num)

    return as_number


def parse_line(line: str, line_num: Optional[int] = None) -> RawRange:
    parts = line.rstrip('\r\n').split('\t', maxsplit=len(FIELDS) - 1)
    if len(parts) != len(FIELDS):
        raise SourceParseError('record', line.rstrip('\r\n'), f'expected {len(FIELDS)} fields, got {len(parts)}', line_num)

    record = dict(zip(FIELDS, parts))
    return RawRange(
        start=_parse_ip('range_start_ip', record['range_start_ip'], line_num),
        end=_parse_ip('range_end_ip', record['range_end_ip'], line_num),
        as_number=_parse_as_number(record['as_number'], line_num),
        country=record['country_code'],
        owner=record['owner_name'],
    )


def parse_source(fd: TextIO) -> Generator[RawRange, None, None]:
    for line_num, line in enumerate(fd, start=1):
        if not line.strip() or line.startswith('#'):
            continue

        raw_range = parse_line(line, line_num)
        if is_routed(raw_range):
            yield raw_range


def normalize_and_build(raw_records: Iterable[RawRange], min_prefix_len: int = DEFAULT_MIN_PREFIX_LEN) -> asn_index.Index:
    annotation_cache: dict[tuple[int, str, str], Mapping[str, Any]] = {}
    blocks: list[Block] = []
    num_ranges = 0

    try:
        for raw_range in raw_records:
            if not is_routed(raw_range):
                continue

            key = (raw_range.as_number, raw_range.country, raw_range.owner)
            annotation = annotation_cache.get(key)
            if annotation is None:
                annotation = annotation_cache.setdefault(key, asn_records.make_annotation(*key))

            blocks.extend(normalize(raw_range, min_prefix_len, annotation))
            num_ranges += 1
    except SourceParseError as e:
        raise BuildError(e) from e

    logger.info('normalized %d ranges into %d blocks (%d distinct annotations)', num_ranges, len(blocks), len(annotation_cache))
    return asn_index.build(blocks)


def build_from_tsv(fd: TextIO, min_prefix_len: int = DEFAULT_MIN_PREFIX_LEN) -> asn_index.Index:
    return normalize_and_build(parse_source(fd), min_prefix_len)


def main() -> None:
    import sys
    with open(sys.argv[1], encoding='utf-8') as fd:
        index = build_from_tsv(fd)

    for block in index:
        print(block)


if __name__ == '__main__':
    main()
