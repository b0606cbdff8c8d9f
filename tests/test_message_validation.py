import pytest

from app.core.exceptions import ValidationError
from app.services.message_validation import require_id, validate_message_text


class TestValidateMessageText:

    def test_accepts_normal_text(self):
        assert validate_message_text("Is a 32 day cycle normal?") == "Is a 32 day cycle normal?"

    @pytest.mark.parametrize("text", ["", "   ", "\n\t"])
    def test_rejects_blank(self, text):
        with pytest.raises(ValidationError):
            validate_message_text(text)

    def test_rejects_non_string(self):
        with pytest.raises(ValidationError):
            validate_message_text(None)

    def test_length_limit(self):
        validate_message_text("a b " * 1000)
        with pytest.raises(ValidationError, match="too long"):
            validate_message_text("ab" * 2001)

    def test_custom_length_limit(self):
        with pytest.raises(ValidationError):
            validate_message_text("hello world", max_length=5)

    def test_rejects_long_repeated_run(self):
        validate_message_text("so painful" + "!" * 50)
        with pytest.raises(ValidationError, match="repeated"):
            validate_message_text("so painful" + "!" * 51)


class TestRequireId:

    def test_returns_value(self):
        assert require_id("user-1", "owner_id") == "user-1"

    @pytest.mark.parametrize("value", [None, "", "  "])
    def test_missing(self, value):
        with pytest.raises(ValidationError, match="owner_id is required"):
            require_id(value, "owner_id")
