"""Tests for log redaction."""

from oauth2_sso.utils import MASK, redact


class TestRedact:
    """Tests for redact()."""

    def test_masks_credentials(self):
        """Token and secret values are masked."""
        data = {
            "access_token": "at",
            "client_secret": "s",
            "Authorization": "Bearer at",
            "scope": "openid",
        }
        assert redact(data) == {
            "access_token": MASK,
            "client_secret": MASK,
            "Authorization": MASK,
            "scope": "openid",
        }

    def test_nested(self):
        """Nested dictionaries and lists are walked."""
        data = {"Profile": {"Email": "a@b.com"}, "items": [{"RefreshToken": "rt"}]}
        assert redact(data) == {"Profile": {"Email": "a@b.com"}, "items": [{"RefreshToken": MASK}]}

    def test_empty_values_left_alone(self):
        """Empty credentials are shown as they are."""
        assert redact({"refresh_token": None}) == {"refresh_token": None}

    def test_input_untouched(self):
        """redact returns a copy."""
        data = {"code": "abc"}
        redact(data)
        assert data == {"code": "abc"}
