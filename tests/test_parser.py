"""
Unit tests for Chhaya parsing helper functions

Validates CLI argument parsing utilities: output numbers, normalized ranges, and
comma-separated lists.

"""

import argparse

import pytest
from chhaya.converter import parse_output_numbers, parse_norm_range, parse_fields_arg


# ──────────────────────────────────────────────────────────────
# Output numbers parsing
# ──────────────────────────────────────────────────────────────

def test_parse_output_numbers_single():
    assert parse_output_numbers("5") == [5]


def test_parse_output_numbers_range():
    assert parse_output_numbers("2-4") == [2, 3, 4]


def test_parse_output_numbers_list():
    assert parse_output_numbers("1,3,7") == [1, 3, 7]


def test_parse_output_numbers_invalid():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("1-3,5")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("5-2")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_output_numbers("abc")


# ──────────────────────────────────────────────────────────────
# Normalized range parsing
# ──────────────────────────────────────────────────────────────

def test_parse_norm_range_valid():
    assert parse_norm_range("0.2:0.8") == (0.2, 0.8)


def test_parse_norm_range_colon_variants():
    assert parse_norm_range(":0.6") == (0.0, 0.6)
    assert parse_norm_range("0.4:") == (0.4, 1.0)
    assert parse_norm_range(":") == (0.0, 1.0)
    assert parse_norm_range(None) == (None, None)


def test_parse_norm_range_invalid():
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("0.5")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("0.8:0.2")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_norm_range("0:1.5")


# ──────────────────────────────────────────────────────────────
# Comma-separated lists (variables, units)
# ──────────────────────────────────────────────────────────────

def test_parse_fields_arg_none():
    assert parse_fields_arg(None) is None
    assert parse_fields_arg(" , ") is None


def test_parse_fields_arg_valid():
    assert parse_fields_arg("sd, rho,sigma_z") == ["sd", "rho", "sigma_z"]
