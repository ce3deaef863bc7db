"""Tests for package metadata."""

import podcraft


def test_version_is_set() -> None:
    assert podcraft.__version__ == "0.1.0"
