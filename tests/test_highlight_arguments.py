import pytest

from readwise_mcp.tools import (
    FIELD_NAMES,
    InvalidArgumentsError,
    has_search_terms,
    parse_search_arguments,
    parse_streaming_search_arguments,
)


def _reasons(arguments):
    with pytest.raises(InvalidArgumentsError) as excinfo:
        parse_search_arguments(arguments)
    return excinfo.value.reasons


def test_empty_arguments_report_both_required_fields():
    with pytest.raises(InvalidArgumentsError) as excinfo:
        parse_search_arguments({})
    assert excinfo.value.reasons == ["Required", "Required"]
    assert str(excinfo.value) == "Required, Required"


def test_missing_arguments_object():
    assert _reasons(None) == ["Required"]


def test_arguments_must_be_an_object():
    assert _reasons(["habits"]) == ["Expected object, received array"]


def test_valid_arguments_drop_unknown_keys():
    payload = parse_search_arguments(
        {
            "vector_search_term": "habits",
            "full_text_queries": [{"field_name": "highlight_tags", "search_term": "focus", "boost": 2}],
            "limit": 10,
        }
    )
    assert payload == {
        "vector_search_term": "habits",
        "full_text_queries": [{"field_name": "highlight_tags", "search_term": "focus"}],
    }


def test_wrong_types_are_described():
    reasons = _reasons({"vector_search_term": 42, "full_text_queries": "author"})
    assert reasons == ["Expected string, received number", "Expected array, received string"]


def test_null_vector_term_is_rejected():
    reasons = _reasons({"vector_search_term": None, "full_text_queries": []})
    assert reasons == ["Expected string, received null"]


def test_bad_field_name_lists_allowed_values():
    reasons = _reasons(
        {
            "vector_search_term": "habits",
            "full_text_queries": [{"field_name": "author", "search_term": "Clear"}],
        }
    )
    assert len(reasons) == 1
    assert reasons[0].startswith("Invalid enum value. Expected 'document_author' | ")
    assert reasons[0].endswith("received 'author'")
    for name in FIELD_NAMES:
        assert f"'{name}'" in reasons[0]


def test_query_missing_search_term():
    reasons = _reasons(
        {"vector_search_term": "habits", "full_text_queries": [{"field_name": "document_title"}]}
    )
    assert reasons == ["Required"]


def test_streaming_arguments_are_optional():
    assert parse_streaming_search_arguments({}) == {}
    assert parse_streaming_search_arguments({"vector_search_term": "habits"}) == {"vector_search_term": "habits"}


@pytest.mark.parametrize(
    "arguments, expected",
    [
        ({"vector_search_term": None}, ["Expected string, received null"]),
        ({"full_text_queries": None}, ["Expected array, received null"]),
        (
            {"vector_search_term": None, "full_text_queries": None},
            ["Expected string, received null", "Expected array, received null"],
        ),
        (None, ["Required"]),
    ],
)
def test_streaming_arguments_reject_null(arguments, expected):
    with pytest.raises(InvalidArgumentsError) as excinfo:
        parse_streaming_search_arguments(arguments)
    assert excinfo.value.reasons == expected


def test_streaming_arguments_still_check_shapes():
    with pytest.raises(InvalidArgumentsError):
        parse_streaming_search_arguments(
            {"full_text_queries": [{"field_name": "nope", "search_term": "x"}]}
        )


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({}, False),
        ({"vector_search_term": ""}, False),
        ({"full_text_queries": []}, False),
        ({"vector_search_term": "", "full_text_queries": []}, False),
        ({"vector_search_term": "habits"}, True),
        ({"full_text_queries": [{"field_name": "document_title", "search_term": "x"}]}, True),
    ],
)
def test_has_search_terms(payload, expected):
    assert has_search_terms(payload) is expected
