"""Tests for the password variants tried when signing."""

import pytest
from django.core.exceptions import ImproperlyConfigured

from signing.password_variants import (
    LEGACY_PASSWORD_VARIANTS,
    STRICT_PASSWORD_VARIANTS,
    get_password_variants,
    iter_password_candidates,
)


class TestGetPasswordVariants:
    """Tests for get_password_variants."""

    def test_legacy_order(self):
        """Test the fixed order of the legacy strategy."""
        assert [variant.name for variant in LEGACY_PASSWORD_VARIANTS] == [
            'original',
            'trimmed',
            'lowercased',
            'uppercased',
            'empty',
        ]

    @pytest.mark.parametrize(
        ('strategy', 'expected'), [('legacy', LEGACY_PASSWORD_VARIANTS), ('strict', STRICT_PASSWORD_VARIANTS)]
    )
    def test_named_strategy(self, strategy, expected):
        """Test selecting a strategy by name."""
        assert get_password_variants(strategy) == expected

    def test_configured_strategy(self, settings):
        """Test that the strategy defaults to the configured one."""
        settings.CUSTODIA_PASSWORD_VARIANTS = 'strict'
        assert get_password_variants() == STRICT_PASSWORD_VARIANTS

    def test_unknown_strategy(self):
        """Test that unknown strategies are a configuration error."""
        with pytest.raises(ImproperlyConfigured, match='Unknown password variant strategy'):
            get_password_variants('lenient')


class TestIterPasswordCandidates:
    """Tests for iter_password_candidates."""

    def test_all_variants(self):
        """Test that every distinct transformation is yielded in order."""
        assert list(iter_password_candidates(' Secret ')) == [
            ('original', ' Secret '),
            ('trimmed', 'Secret'),
            ('lowercased', ' secret '),
            ('uppercased', ' SECRET '),
            ('empty', ''),
        ]

    def test_duplicates_are_skipped(self):
        """Test that a candidate equal to an earlier one is not tried again."""
        assert list(iter_password_candidates('secret')) == [
            ('original', 'secret'),
            ('uppercased', 'SECRET'),
            ('empty', ''),
        ]

    def test_empty_password(self):
        """Test that an empty password yields a single candidate."""
        assert list(iter_password_candidates('')) == [('original', '')]

    def test_strict(self):
        """Test that the strict strategy only yields the stored password."""
        assert list(iter_password_candidates(' Secret ', STRICT_PASSWORD_VARIANTS)) == [('original', ' Secret ')]
