"""
Unit tests for tagged self-service tokens.
"""

import pytest

from scheduling.errors import TokenError, TokenErrorCode
from scheduling.tokens import ActionToken, ModificationToken


class TestMint:
    def test_prefixes(self):
        assert ActionToken.mint().value.startswith("act_")
        assert ModificationToken.mint().value.startswith("mod_")

    def test_default_entropy_from_settings(self):
        token = ActionToken.mint()
        # 32 bytes -> 64 hex characters
        assert len(token.value) == len("act_") + 64

    def test_explicit_entropy(self):
        assert len(ModificationToken.mint(16).value) == len("mod_") + 32

    def test_unique(self):
        assert len({ActionToken.mint().value for _ in range(100)}) == 100

    def test_str(self):
        token = ActionToken.mint()
        assert str(token) == token.value


class TestParse:
    def test_round_trip(self):
        token = ModificationToken.mint()
        assert ModificationToken.parse(token.value) == token

    def test_passes_through_parsed_token(self):
        token = ActionToken.mint()
        assert ActionToken.parse(token) is token

    def test_wrong_type_is_not_found(self):
        """A modification token is never accepted where an action token is required."""
        with pytest.raises(TokenError) as exc_info:
            ActionToken.parse(ModificationToken.mint().value)
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND

    @pytest.mark.parametrize("raw", [None, "", "act_", "act_xyz", "ACT_abcd", 42, "mod_zz"])
    def test_malformed_is_not_found(self, raw):
        with pytest.raises(TokenError) as exc_info:
            ActionToken.parse(raw)
        assert exc_info.value.code == TokenErrorCode.NOT_FOUND

    def test_constructor_checks_prefix(self):
        with pytest.raises(ValueError):
            ActionToken("mod_abcd")

    def test_user_message_per_code(self):
        messages = {TokenError(code).user_message for code in TokenErrorCode}
        assert len(messages) == len(TokenErrorCode)
