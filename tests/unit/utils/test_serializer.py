import pytest
import json
from datetime import datetime, timezone
from decimal import Decimal
from pkpublish.utils.exceptions import FormattingError
from pkpublish.utils.serializer import Serializer


@pytest.fixture
def serializer():
    """Fixture to create a Serializer instance for tests."""
    return Serializer()


def test_to_json_is_compact(serializer):
    text = serializer.to_json({"id": 1, "tags": ["a", "b"]}, fallback=lambda: "{}")

    assert text == '{"id":1,"tags":["a","b"]}'


def test_to_json_renders_unknown_types_as_text(serializer):
    text = serializer.to_json(
        {"amount": Decimal("12.50"), "at": datetime(2024, 1, 2, tzinfo=timezone.utc)},
        fallback=lambda: "{}",
    )

    assert json.loads(text) == {
        "amount": "12.50",
        "at": "2024-01-02 00:00:00+00:00",
    }


def test_render_raises_formatting_error(serializer):
    circular = {}
    circular["self"] = circular

    with pytest.raises(FormattingError) as exc_info:
        serializer.render(circular)

    assert "Unable to render message" in str(exc_info.value)


def test_to_json_uses_fallback(serializer):
    """Test the fallback text is returned when rendering fails."""
    circular = {}
    circular["self"] = circular

    text = serializer.to_json(circular, fallback=lambda: '{"ERROR":"unserializable"}')

    assert text == '{"ERROR":"unserializable"}'


def test_to_json_non_string_keys_fallback(serializer):
    text = serializer.to_json({(1, 2): "tuple key"}, fallback=lambda: "fallback")

    assert text == "fallback"
