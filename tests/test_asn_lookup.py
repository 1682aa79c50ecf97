"""Tests for the lookup command in :mod:`asn_lookup`."""

import io
import json

import pytest

import asn_codec
import asn_lookup


@pytest.fixture
def db_path(tmp_path, sample_index):
    path = tmp_path / 'asn-db.dat'
    asn_codec.store_file(sample_index, path)
    return path


def run(db_path, *args, stdin=''):
    out = io.StringIO()
    code = asn_lookup.main(['--database-cache-path', str(db_path), *args], stdin=io.StringIO(stdin), stdout=out)
    return code, out.getvalue()


def test_table_output(db_path):
    code, out = run(db_path, '1.0.0.42', '8.8.8.8', '1.0.1.1')

    lines = out.splitlines()
    assert code == 0
    assert lines[0].split() == ['Network', 'Country', 'AS', 'Number', 'Owner', 'Matched', 'IPs']
    assert lines[1].split() == ['1.0.0.0/24', 'US', '13335', 'CLOUDFLARENET', '1.0.0.42']
    assert lines[2].split() == ['-', '-', '-', '-', '1.0.1.1']
    assert lines[3].split() == ['8.8.8.0/23', 'US', '15169', 'GOOGLE', '8.8.8.8']
    # columns are aligned
    assert lines[1].index('US') == lines[0].index('Country')


def test_csv_output_groups_matched_ips(db_path):
    code, out = run(db_path, '-o', 'csv', '8.8.9.9', '8.8.8.8', '8.8.8.8')

    assert code == 0
    assert out.splitlines() == [
        'Network,Country,AS Number,Owner,Matched IPs',
        '8.8.8.0/23,US,15169,GOOGLE,"8.8.8.8, 8.8.9.9"',
    ]


def test_json_output(db_path):
    code, out = run(db_path, '-o', 'json', '1.0.0.1', '9.9.9.9')

    rows = [json.loads(line) for line in out.splitlines()]
    assert code == 0
    assert rows == [
        {'network': '1.0.0.0/24', 'country': 'US', 'as_number': '13335', 'owner': 'CLOUDFLARENET', 'matched_ips': ['1.0.0.1']},
        {'network': None, 'country': None, 'as_number': None, 'owner': None, 'matched_ips': ['9.9.9.9']},
    ]


def test_puppet_output(db_path):
    code, out = run(db_path, '-o', 'puppet', '1.0.0.1', '1.0.0.2', '9.9.9.9')

    assert code == 0
    assert out.splitlines() == [
        "'1.0.0.0/24', # US 13335 CLOUDFLARENET (1.0.0.1, 1.0.0.2)",
        "'9.9.9.9', # Not found in the ASN DB",
    ]


def test_no_matched_ips(db_path):
    code, out = run(db_path, '-n', '-o', 'puppet', '1.0.0.1', '9.9.9.9')

    assert code == 0
    assert out.splitlines() == ["'1.0.0.0/24', # US 13335 CLOUDFLARENET"]


def test_ips_from_stdin_csv(db_path):
    stdin = 'host-a;1.0.0.1\nhost-b;8.8.8.8\n\n'

    code, out = run(db_path, '-o', 'csv', '--input-csv-delimiter', ';', '--input-csv-ip-column', '2', stdin=stdin)

    assert code == 0
    assert [line.split(',')[0] for line in out.splitlines()[1:]] == ['1.0.0.0/24', '8.8.8.0/23']


def test_bad_ip_exits_2(db_path):
    code, out = run(db_path, 'not-an-ip')

    assert code == 2
    assert out == ''


def test_missing_column_exits_2(db_path):
    code, _ = run(db_path, '--input-csv-ip-column', '3', stdin='1.0.0.1\n')

    assert code == 2


def test_missing_database_exits_2(tmp_path):
    code, out = run(tmp_path / 'missing.dat', '1.0.0.1')

    assert code == 2
    assert out == ''


def test_corrupt_database_exits_1(tmp_path):
    path = tmp_path / 'asn-db.dat'
    path.write_bytes(b'garbage')

    code, _ = run(path, '1.0.0.1')

    assert code == 1


@pytest.mark.parametrize(
    'args',
    [
        ['--input-csv-delimiter', ';;'],
        ['--input-csv-ip-column', '0'],
        ['-o', 'xml'],
    ],
)
def test_bad_options(db_path, args):
    with pytest.raises(SystemExit) as excinfo:
        run(db_path, *args)

    assert excinfo.value.code == 2


def test_ips_from_stdin_csv_with_header(db_path):
    stdin = 'host,address\nhost-a,1.0.0.1\n'

    code, out = run(db_path, '-o', 'csv', '--input-csv-ip-column', '2', '--input-csv-header', stdin=stdin)

    assert code == 0
    assert out.splitlines()[1:] == ['1.0.0.0/24,US,13335,CLOUDFLARENET,1.0.0.1']


def test_stdin_header_row_without_flag_exits_2(db_path):
    code, _ = run(db_path, '--input-csv-ip-column', '2', stdin='host,address\nhost-a,1.0.0.1\n')

    assert code == 2
