"""Shared fixtures for the ASN tools tests."""

import io

import pytest

import parse_ip2asn_file

SAMPLE_TSV = (
    '1.0.0.0\t1.0.0.255\t13335\tUS\tCLOUDFLARENET\n'
    '1.0.1.0\t1.0.3.255\t0\tNone\tNot routed\n'
    '1.0.4.0\t1.0.7.255\t38803\tAU\tWPL-AS-AP Wirefreebroadband Pty Ltd\n'
    '8.8.8.0\t8.8.9.255\t15169\tUS\tGOOGLE\n'
    '10.0.0.0\t10.0.0.5\t64512\tZZ\tPRIVATE\n'
    '192.168.0.0\t192.168.0.255\t0\tNone\tNone\n'
)


@pytest.fixture
def sample_tsv():
    return SAMPLE_TSV


@pytest.fixture
def sample_index():
    return parse_ip2asn_file.build_from_tsv(io.StringIO(SAMPLE_TSV))
