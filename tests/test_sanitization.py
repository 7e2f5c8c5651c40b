import pytest

from casaora.email_service import render_layout
from casaora.utils.sanitization import sanitize_dict, sanitize_text


@pytest.mark.parametrize(
    "raw, cleaned",
    [
        ("Tom & Jerry <3", "Tom & Jerry <3"),
        ("<b>Deep</b> clean &amp; iron", "Deep clean & iron"),
        ("  padded  ", "padded"),
    ],
)
def test_sanitize_text(raw, cleaned):
    assert sanitize_text(raw) == cleaned


def test_length_is_measured_on_decoded_text():
    assert sanitize_text("&" * 10, max_length=10) == "&" * 10
    with pytest.raises(ValueError):
        sanitize_text("&" * 11, max_length=10)


def test_none_passes_through():
    assert sanitize_text(None) is None
    assert sanitize_dict({}) == {}


def test_email_escapes_sanitized_text_once():
    rendered = render_layout("Review", sanitize_text("Salt & pepper"))
    assert "Salt &amp; pepper" in rendered
    assert "&amp;amp;" not in rendered
