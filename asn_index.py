#!/usr/bin/env python3

import bisect
import ipaddress
import itertools
import logging

from typing import Optional, Iterable, Iterator, Union

from asn_records import Block

logger = logging.getLogger(__name__)

Address = Union[ipaddress.IPv4Address, int, str]


def to_int(addr: Address) -> int:
    if isinstance(addr, int):
        if not 0 <= addr <= 0xffffffff:
            raise ValueError(f'IPv4 address out of range: {addr}')
        return addr

    if isinstance(addr, str):
        addr = ipaddress.IPv4Address(addr)

    return int(addr)


# immutable once built; rebuild to update
class Index(object):
    __slots__ = ('_blocks', '_bases')

    def __init__(self, blocks: Iterable[Block] = ()) -> None:
        self._blocks = tuple(blocks)
        self._bases = tuple(block.base for block in self._blocks)

    @property
    def blocks(self) -> tuple[Block, ...]:
        return self._blocks

    def __len__(self) -> int:
        return len(self._blocks)

    def __iter__(self) -> Iterator[Block]:
        return iter(self._blocks)

    def __getitem__(self, i: int) -> Block:
        return self._blocks[i]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Index):
            return NotImplemented
        return self._blocks == other._blocks

    def __hash__(self) -> int:
        return hash(self._blocks)

    def __repr__(self) -> str:
        return f'Index(blocks={len(self._blocks)})'

    def lookup(self, addr: Address) -> Optional[Block]:
        return lookup(self, addr)


def build(blocks: Iterable[Block]) -> Index:
    index = Index(sorted(blocks, key=lambda block: block.base))
    logger.debug('built index of %d blocks', len(index))
    return index


def lookup(index: Index, addr: Address) -> Optional[Block]:
    addr_i = to_int(addr)

    # rightmost block with base <= addr
    pos = bisect.bisect_right(index._bases, addr_i) - 1
    if pos < 0:
        return None

    candidate = index._blocks[pos]
    if addr_i <= candidate.last:
        return candidate

    return None


def group_lookups(index: Index, addrs: Iterable[Address]) -> list[tuple[Optional[Block], list[ipaddress.IPv4Address]]]:
    '''
    Resolve a batch of addresses, deduplicated and sorted,
    grouping adjacent addresses that matched the same block (or nothing)
    '''
    unique_addrs = sorted({ipaddress.IPv4Address(to_int(addr)) for addr in addrs})
    resolved = ((addr, lookup(index, addr)) for addr in unique_addrs)

    return [
        (block, [addr for addr, _ in group])
        for block, group in itertools.groupby(resolved, key=lambda pair: pair[1])
    ]


class AsnDatabase(object):
    '''Holds the current index; replacing it is a single reference swap'''

    def __init__(self, index: Optional[Index] = None) -> None:
        self.index = index or Index()

    def replace(self, index: Index) -> Index:
        old, self.index = self.index, index
        logger.info('replaced index of %d blocks with %d blocks', len(old), len(index))
        return old

    def lookup(self, addr: Address) -> Optional[Block]:
        return lookup(self.index, addr)

    def __str__(self) -> str:
        return f'AsnDatabase(index={self.index!r})'
