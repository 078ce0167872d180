"""Unit tests for remediation guidance resolution."""

from matomo_access.errors import ErrorKind, resolve_guidance
from matomo_access.errors.guidance import (
    DEFAULT_GUIDANCE,
    GRANT_ACCESS_GUIDANCE,
    RATE_LIMITED_GUIDANCE,
    SITE_GUIDANCE,
    TOKEN_REJECTED_GUIDANCE,
    UNKNOWN_GUIDANCE,
)


class TestResolveGuidance:
    """Tests for guidance precedence."""

    def test_default_without_message_or_code(self) -> None:
        """Test bare errors get the kind's default guidance."""
        for kind in ErrorKind:
            assert resolve_guidance(kind) == DEFAULT_GUIDANCE[kind]

    def test_unknown_kind(self) -> None:
        """Test unclassified errors get the generic guidance."""
        assert resolve_guidance(None) == UNKNOWN_GUIDANCE

    def test_auth_token_refinement(self) -> None:
        """Test token wording refines auth guidance."""
        guidance = resolve_guidance(ErrorKind.AUTH, "The TOKEN is invalid")

        assert guidance == TOKEN_REJECTED_GUIDANCE

    def test_permission_access_refinement(self) -> None:
        """Test access wording refines permission guidance."""
        guidance = resolve_guidance(ErrorKind.PERMISSION, "Access denied for user")

        assert guidance == GRANT_ACCESS_GUIDANCE

    def test_rate_limit_fixed_guidance(self) -> None:
        """Test rate limits always get the same text, even with a code."""
        guidance = resolve_guidance(ErrorKind.RATE_LIMIT, "idsite 5 throttled", 101)

        assert guidance == RATE_LIMITED_GUIDANCE

    def test_code_before_keywords(self) -> None:
        """Test known codes win over keyword matches."""
        guidance = resolve_guidance(ErrorKind.CLIENT, "the segment is odd", "103")

        assert "date parameter" in guidance

    def test_keyword_match(self) -> None:
        """Test message keywords select targeted guidance."""
        assert (
            resolve_guidance(ErrorKind.CLIENT, "Website id 99 does not exist")
            == SITE_GUIDANCE
        )
        assert "segment" in resolve_guidance(ErrorKind.CLIENT, "Invalid segment")
        assert "periods" in resolve_guidance(ErrorKind.CLIENT, "Unknown period 'hour'")
        assert "goal ID" in resolve_guidance(ErrorKind.CLIENT, "Unknown goal")
        assert "API method" in resolve_guidance(
            ErrorKind.CLIENT, "The method 'Foo.bar' does not exist"
        )

    def test_word_boundaries(self) -> None:
        """Test keywords only match whole words."""
        guidance = resolve_guidance(ErrorKind.CLIENT, "update failed")

        assert guidance == DEFAULT_GUIDANCE[ErrorKind.CLIENT]

    def test_unknown_code_falls_through(self) -> None:
        """Test unknown codes fall back to the default."""
        guidance = resolve_guidance(ErrorKind.SERVER, None, 999)

        assert guidance == DEFAULT_GUIDANCE[ErrorKind.SERVER]
