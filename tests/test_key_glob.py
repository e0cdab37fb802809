"""
Tests for splitting keys into a listing prefix and a glob.
"""
import pytest

from s3_ferry.key_glob import Glob, GlobMode, has_recursive_wildcard
from s3_ferry.uri import Key


@pytest.mark.parametrize("pattern,expected", [
    ("test/**", True),
    ("test/\\**", False),
    ("test/\\\\**", True),
    ("test/*", False),
    ("**", True),
])
def test_has_recursive_wildcard(pattern, expected):
    """Test detection of unescaped recursive wildcards."""
    assert has_recursive_wildcard(pattern) is expected


def test_literal_key_is_not_a_glob_in_auto_mode():
    """Test that keys without wildcard syntax stay literal."""
    assert Glob.from_key(Key("dir/file.txt"), GlobMode.AUTO) is None


def test_off_mode_never_globs():
    """Test that glob mode off keeps wildcards literal."""
    assert Glob.from_key(Key("dir/*.txt"), GlobMode.OFF) is None


def test_prefix_is_leading_literal_components():
    """Test that only whole literal components go into the prefix."""
    glob = Glob.from_key(Key("logs/2024/app-*.log"))
    assert glob.prefix == Key("logs/2024/")
    assert glob.pattern == "app-*.log"
    assert not glob.has_recursive_wildcard


def test_on_mode_treats_last_component_as_pattern():
    """Test that glob mode on matches a literal last component."""
    glob = Glob.from_key(Key("dir/file.txt"), GlobMode.ON)
    assert glob.prefix == Key("dir/")
    assert glob.matches("dir/file.txt")
    assert not glob.matches("dir/file.txt2")


def test_single_star_does_not_cross_directories():
    """Test that * stops at a slash."""
    glob = Glob.from_key(Key("dir/*.txt"))
    assert glob.matches("dir/a.txt")
    assert not glob.matches("dir/sub/a.txt")
    assert not glob.matches("other/a.txt")


def test_recursive_wildcard_matches_any_depth():
    """Test that **/ matches zero or more directories."""
    glob = Glob.from_key(Key("dir/**/*.txt"))
    assert glob.has_recursive_wildcard
    assert glob.matches("dir/a.txt")
    assert glob.matches("dir/x/y/a.txt")
    assert not glob.matches("dir/x/a.log")


def test_classes_and_alternatives():
    """Test character classes and brace alternatives."""
    glob = Glob.from_key(Key("img/[ab]?.{jpg,png}"))
    assert glob.matches("img/a1.jpg")
    assert glob.matches("img/b2.png")
    assert not glob.matches("img/c1.jpg")
    assert not glob.matches("img/a1.gif")


def test_matches_directory_prefixes():
    """Test that common prefixes are matched without their trailing slash."""
    glob = Glob.from_key(Key("data/2*"))
    assert glob.matches("data/2024/")
    assert not glob.matches("data/1999/")


def test_malformed_pattern_is_literal():
    """Test that a pattern that does not compile is treated literally."""
    assert Glob.from_key(Key("dir/[abc")) is None
