"""
Tests for ai_approver/__init__.py
"""

import pytest

import ai_approver


class TestPackageMetadata:
    """Tests for package metadata."""

    def test_version_format(self):
        """The version is a dotted string."""
        assert isinstance(ai_approver.__version__, str)
        assert len(ai_approver.__version__.split(".")) >= 2

    def test_author_and_description(self):
        """Author and description are defined."""
        assert ai_approver.__author__
        assert ai_approver.__description__


class TestLazyImports:
    """Tests for lazy import functionality."""

    @pytest.mark.parametrize("name", ai_approver.__all__)
    def test_every_export_resolves(self, name):
        """Every name in __all__ can be imported."""
        assert getattr(ai_approver, name) is not None

    def test_exports_are_the_real_objects(self):
        """Lazy exports are the module attributes themselves."""
        from ai_approver.diff_parser import compute_commentable_lines
        from ai_approver.deduplicator import CommentDeduplicator

        assert ai_approver.compute_commentable_lines is compute_commentable_lines
        assert ai_approver.CommentDeduplicator is CommentDeduplicator

    def test_unknown_attribute(self):
        """Unknown names raise AttributeError."""
        with pytest.raises(AttributeError):
            ai_approver.NoSuchThing
