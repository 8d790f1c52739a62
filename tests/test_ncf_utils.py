# NG-HEADER: Nombre de archivo: test_ncf_utils.py
# NG-HEADER: Ubicación: tests/test_ncf_utils.py
# NG-HEADER: Descripción: Pruebas de formato y parseo de NCF.
# NG-HEADER: Lineamientos: Ver AGENTS.md
import pytest

from db.ncf_utils import format_ncf, is_well_formed, max_ncf_number, split_ncf


def test_format_pads_to_eight_digits():
    assert format_ncf("B01", 42) == "B0100000042"
    assert format_ncf("B02", 1) == "B0200000001"


def test_format_custom_width():
    assert format_ncf("COT", 7, width=4) == "COT0007"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("B0100000050", ("B01", 50)),
        ("B0100000005", ("B01", 5)),
        ("B0100001500", ("B01", 1500)),
        ("  B0200000001 ", ("B02", 1)),
    ],
)
def test_split_valid(value, expected):
    assert split_ncf(value) == expected


@pytest.mark.parametrize(
    "value",
    [None, "", "B0", "B01", "B01ABC", "B01-0000001", "B01 0001", "B011", "B010000001", "B01000000001"],
)
def test_split_invalid(value):
    assert split_ncf(value) is None
    assert not is_well_formed(value)


def test_max_number_follows_width():
    assert max_ncf_number() == 99_999_999
    assert max_ncf_number(4) == 9999
    assert format_ncf("COT", max_ncf_number()) == "COT99999999"
