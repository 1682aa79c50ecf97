#!/usr/bin/env python3
'''
Binary cache format for a built ASN index.

    header : magic b'ASNDB' | version u8 | string_count u32 | block_count u32
    strings: string_count x (length u16 | utf-8 bytes)
    blocks : block_count x (base u32 | prefix_len u8 | as_number u32 | country_idx u32 | owner_idx u32)

All integers are big-endian. Country and owner strings are interned in the
string table and referenced by index.
'''

import io
import logging
import os
import struct

from typing import BinaryIO, Any, Mapping, Union

import asn_records
import asn_index

from asn_records import Block, DecodeError, EncodeError, StorageError, MAX_PREFIX_LEN

logger = logging.getLogger(__name__)

MAGIC = b'ASNDB'
VERSION = 1

_header = struct.Struct('>5sBII')
_str_len = struct.Struct('>H')
_block = struct.Struct('>IBIII')

PathLike = Union[str, 'os.PathLike[str]']


def store(index: asn_index.Index, sink: BinaryIO) -> None:
    strings: dict[str, int] = {}

    def intern(s: str) -> int:
        return strings.setdefault(s, len(strings))

    packed_blocks = bytearray()
    for block in index:
        try:
            packed_blocks += _block.pack(
                block.base,
                block.prefix_len,
                block.as_number,
                intern(block.country),
                intern(block.owner),
            )
        except struct.error as e:
            raise EncodeError(f'cannot encode block {block.base}/{block.prefix_len}: {e}') from e

    packed_strings = bytearray()
    for s in strings:
        encoded = s.encode('utf-8')
        if len(encoded) > 0xffff:
            raise EncodeError(f'string too long to encode ({len(encoded)} bytes): {s[:50]!r}')
        packed_strings += _str_len.pack(len(encoded))
        packed_strings += encoded

    sink.write(_header.pack(MAGIC, VERSION, len(strings), len(index)))
    sink.write(packed_strings)
    sink.write(packed_blocks)


def _read_exact(source: BinaryIO, size: int, what: str) -> bytes:
    data = source.read(size)
    if len(data) != size:
        raise DecodeError(f'truncated stream reading {what}: wanted {size} bytes, got {len(data)}')

    return data


def load(source: BinaryIO) -> asn_index.Index:
    magic, version, string_count, block_count = _header.unpack(_read_exact(source, _header.size, 'header'))
    if magic != MAGIC:
        raise DecodeError(f'not an ASN database (magic {magic!r})')
    if version != VERSION:
        raise DecodeError(f'unsupported ASN database version {version}')

    strings: list[str] = []
    for i in range(string_count):
        (length,) = _str_len.unpack(_read_exact(source, _str_len.size, f'string {i} length'))
        raw = _read_exact(source, length, f'string {i}')
        try:
            strings.append(raw.decode('utf-8'))
        except UnicodeDecodeError as e:
            raise DecodeError(f'invalid utf-8 in string {i}: {e}') from e

    annotation_cache: dict[tuple[int, int, int], Mapping[str, Any]] = {}
    blocks: list[Block] = []
    for i in range(block_count):
        base, prefix_len, as_number, country_idx, owner_idx = _block.unpack(_read_exact(source, _block.size, f'block {i}'))
        if prefix_len > MAX_PREFIX_LEN:
            raise DecodeError(f'block {i}: prefix length {prefix_len} over {MAX_PREFIX_LEN} bits')
        if country_idx >= string_count or owner_idx >= string_count:
            raise DecodeError(f'block {i}: string index out of range')

        key = (as_number, country_idx, owner_idx)
        annotation = annotation_cache.get(key)
        if annotation is None:
            annotation = annotation_cache.setdefault(key, asn_records.make_annotation(as_number, strings[country_idx], strings[owner_idx]))

        blocks.append(Block(base, prefix_len, annotation))

    extra = source.read(1)
    if extra:
        raise DecodeError('data left over after last block')

    # stored sorted; no need to go through asn_index.build
    return asn_index.Index(blocks)


def dumps(index: asn_index.Index) -> bytes:
    buf = io.BytesIO()
    store(index, buf)
    return buf.getvalue()


def loads(data: bytes) -> asn_index.Index:
    return load(io.BytesIO(data))


def store_file(index: asn_index.Index, path: PathLike) -> None:
    logger.debug('storing %d blocks to %s', len(index), path)
    # an existing file at path is only ever replaced whole
    tmp_path = f'{os.fspath(path)}.tmp'
    try:
        with open(tmp_path, 'wb') as fd:
            store(index, fd)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StorageError(os.fspath(path), e) from e
    finally:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)


def load_file(path: PathLike) -> asn_index.Index:
    logger.debug('loading ASN database from %s', path)
    try:
        with open(path, 'rb') as fd:
            index = load(fd)
    except OSError as e:
        raise StorageError(os.fspath(path), e) from e

    logger.debug('loaded %d blocks from %s', len(index), path)
    return index
