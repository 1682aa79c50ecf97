#!/usr/bin/env python3

import ipaddress

from dataclasses import dataclass
from typing import Optional, Any, Mapping

from frozendict import frozendict

MAX_PREFIX_LEN = 32
ADDR_MASK = (1 << MAX_PREFIX_LEN) - 1


@dataclass(frozen=True)
class RawRange:
    start: int
    end: int
    as_number: int
    country: str
    owner: str


def make_annotation(as_number: int, country: str, owner: str) -> Mapping[str, Any]:
    return frozendict(as_number=as_number, country=country, owner=owner)


@dataclass(frozen=True)
class Block:
    '''CIDR-aligned IPv4 network plus the AS data shared by every address in it'''
    base: int
    prefix_len: int
    annotation: Mapping[str, Any]

    @property
    def as_number(self) -> int:
        return self.annotation['as_number']

    @property
    def country(self) -> str:
        return self.annotation['country']

    @property
    def owner(self) -> str:
        return self.annotation['owner']

    @property
    def first(self) -> int:
        return self.base

    @property
    def last(self) -> int:
        return self.base + (1 << (MAX_PREFIX_LEN - self.prefix_len)) - 1

    def contains(self, addr: int) -> bool:
        return self.base <= addr <= self.last

    def network(self) -> ipaddress.IPv4Network:
        return ipaddress.IPv4Network((self.base, self.prefix_len))

    def __str__(self) -> str:
        return f'{self.network()} {self.country} {self.as_number} {self.owner}'


def is_aligned(base: int, prefix_len: int) -> bool:
    host_mask = ADDR_MASK >> prefix_len
    return not base & host_mask


class SourceParseError(ValueError):
    def __init__(self, field: str, value: str, reason: str, line_num: Optional[int] = None) -> None:
        self.field = field
        self.value = value
        self.reason = reason
        self.line_num = line_num
        where = f'line {line_num}: ' if line_num is not None else ''
        super().__init__(f'{where}bad {field} {value!r}: {reason}')


class BuildError(Exception):
    def __init__(self, error: SourceParseError) -> None:
        self.error = error
        super().__init__(f'failed to build ASN index: {error}')


class CodecError(Exception):
    pass


class DecodeError(CodecError):
    pass


class EncodeError(CodecError):
    pass


class StorageError(CodecError):
    def __init__(self, path: str, error: OSError) -> None:
        self.path = path
        self.error = error
        super().__init__(f'I/O error on {path}: {error}')
