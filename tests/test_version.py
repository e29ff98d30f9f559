import argparse

import pytest

from kubedns.version import (
    VersionValue,
    add_version_argument,
    format_version_value,
    parse_version_value,
    print_and_exit_if_requested,
)


@pytest.mark.parametrize("text", ["1", "t", "T", "TRUE", "true", "True"])
def test_parse_true_words(text):
    assert parse_version_value(text) is VersionValue.TRUE


@pytest.mark.parametrize("text", ["0", "f", "F", "FALSE", "false", "False"])
def test_parse_false_words(text):
    assert parse_version_value(text) is VersionValue.FALSE


def test_parse_raw():
    assert parse_version_value("raw") is VersionValue.RAW


@pytest.mark.parametrize("text", ["", "yes", "RAW", "2"])
def test_parse_invalid(text):
    with pytest.raises(ValueError):
        parse_version_value(text)


@pytest.mark.parametrize("value", list(VersionValue))
def test_format_round_trip(value):
    assert parse_version_value(format_version_value(value)) is value


def test_format_raw():
    assert format_version_value(VersionValue.RAW) == "raw"


def make_parser():
    parser = argparse.ArgumentParser()
    add_version_argument(parser)
    return parser


def test_flag_absent_defaults_to_false():
    assert make_parser().parse_args([]).version is VersionValue.FALSE


def test_bare_flag_means_true():
    assert make_parser().parse_args(["--version"]).version is VersionValue.TRUE


def test_flag_with_raw():
    assert make_parser().parse_args(["--version=raw"]).version is VersionValue.RAW


def test_flag_with_false():
    assert make_parser().parse_args(["--version=false"]).version is VersionValue.FALSE


def test_flag_invalid_value():
    with pytest.raises(SystemExit) as info:
        make_parser().parse_args(["--version=maybe"])
    assert info.value.code == 2


def test_print_true_exits(capsys):
    with pytest.raises(SystemExit) as info:
        print_and_exit_if_requested(VersionValue.TRUE)
    assert info.value.code == 0
    assert capsys.readouterr().out == "Kube-DNS UNKNOWN\n"


def test_print_raw_exits(capsys):
    with pytest.raises(SystemExit) as info:
        print_and_exit_if_requested(VersionValue.RAW)
    assert info.value.code == 0
    assert capsys.readouterr().out == '"UNKNOWN"\n'


def test_false_prints_nothing(capsys):
    print_and_exit_if_requested(VersionValue.FALSE)
    assert capsys.readouterr().out == ""