import pytest

from flowforge.core.errors import ProtocolParseError
from flowforge.llm.protocol import decode_suggestions, parse_options, parse_response


SIX_OPTIONS = "OPTIONS:\n1. Meal planning\n2. Grocery lists\n3. Nutrition tracking\n4. Recipe import\n5. Sharing\n6. Budgeting"

REPLY_WITH_BOTH = (
    "Great choice! Here are the features I would add.\n\n"
    "SUGGESTIONS:\n"
    "{\n"
    '  "type": "features",\n'
    '  "items": [\n'
    '    {"title": "Meal Calendar", "description": "Weekly view", "actionLabel": "Add to Features"},\n'
    '    {"title": "Shopping List", "metadata": {"priority": "core"}}\n'
    "  ]\n"
    "}\n\n"
    "Which tech stack fits best?\n\n" + SIX_OPTIONS
)


def test_parses_options_and_suggestions_and_strips_blocks():
    parsed = parse_response(REPLY_WITH_BOTH)

    assert parsed.options == [
        "Meal planning",
        "Grocery lists",
        "Nutrition tracking",
        "Recipe import",
        "Sharing",
        "Budgeting",
    ]
    assert parsed.suggestions is not None
    assert parsed.suggestions.type == "features"
    assert [item.title for item in parsed.suggestions.items] == ["Meal Calendar", "Shopping List"]
    assert parsed.suggestions.items[0].action_label == "Add to Features"
    assert parsed.suggestions.items[1].description == ""
    assert parsed.suggestions.items[1].metadata == {"priority": "core"}

    assert "OPTIONS:" not in parsed.display_message
    assert "SUGGESTIONS:" not in parsed.display_message
    assert parsed.display_message.startswith("Great choice!")
    assert parsed.display_message.endswith("Which tech stack fits best?")


def test_plain_text_passes_through_trimmed():
    parsed = parse_response("  Tell me about your project.  \n")

    assert parsed.display_message == "Tell me about your project."
    assert parsed.options is None
    assert parsed.suggestions is None


def test_short_option_list_is_discarded_but_removed_from_text():
    parsed = parse_response("Pick one:\n\nOPTIONS:\n1. Web\n2. Mobile\n3. Desktop")

    assert parsed.options is None
    assert parsed.display_message == "Pick one:"


def test_option_threshold_can_be_lowered_per_call():
    parsed = parse_response("OPTIONS:\n1. Web\n2. Mobile\n3. Desktop\n4. CLI", min_options=4)

    assert parsed.options == ["Web", "Mobile", "Desktop", "CLI"]


def test_malformed_suggestions_degrade_to_none():
    text = 'Here you go.\n\nSUGGESTIONS:\n{"type": "features", "items": [oops]}\n\nAnything else?'

    parsed = parse_response(text)

    assert parsed.suggestions is None
    assert "Here you go." in parsed.display_message
    assert "Anything else?" in parsed.display_message


def test_suggestions_missing_type_degrade_to_none():
    parsed = parse_response('SUGGESTIONS:\n{"items": [{"title": "x"}]}')

    assert parsed.suggestions is None


def test_suggestions_at_end_of_text():
    parsed = parse_response('Done.\n\nSUGGESTIONS:\n{"type": "database", "items": [{"title": "User"}]}')

    assert parsed.suggestions is not None
    assert parsed.suggestions.type == "database"
    assert parsed.display_message == "Done."


def test_parse_options_skips_unnumbered_and_empty_lines():
    body = "1. First\nnot an option\n2.   \n3. Third"

    assert parse_options(body) == ["First", "Third"]


def test_decode_suggestions_rejects_non_object():
    with pytest.raises(ProtocolParseError):
        decode_suggestions("[1, 2, 3]")


def test_empty_input():
    parsed = parse_response("")

    assert parsed.display_message == ""
    assert parsed.options is None
    assert parsed.suggestions is None


def test_windows_line_endings_are_normalised():
    text = "Hi\r\n\r\nOPTIONS:\r\n1. a\r\n2. b\r\n3. c\r\n4. d\r\n5. e\r\n6. f\r\n\r\nWhat next?"

    parsed = parse_response(text)

    assert parsed.options == ["a", "b", "c", "d", "e", "f"]
    assert parsed.display_message.startswith("Hi")
    assert parsed.display_message.endswith("What next?")
    assert "\r" not in parsed.display_message
