import pytest
from hypothesis import given
from hypothesis import strategies as st

from Warden.errors import PatternError
from Warden.patterns import BareParam, Pattern, QuotedParam, Static, parse_pattern


# Pure parsing; no DB needed
@pytest.fixture(autouse=True)
def _fresh_db():  # noqa: D401
    """No-op DB reset for this module."""
    yield


def test_parse_pattern_tokens():
    assert parse_pattern("tag create {key} [value]") == (
        Static("tag"),
        Static("create"),
        BareParam("key"),
        QuotedParam("value"),
    )


@pytest.mark.parametrize(
    "bad",
    [
        "",
        "   ",
        "ban {user",
        "tag [value",
        "tag {}",
        "tag []",
        "tag {a} {a}",
        "tag {a} [a]",
        "tag {1abc}",
        "tag {a-b}",
        "ta}g",
        "x[y]",
    ],
)
def test_malformed_patterns_rejected(bad):
    with pytest.raises(PatternError):
        Pattern.compile(bad)


def test_quoted_param_with_brackets():
    p = Pattern.compile("tag create {key} [value]")
    assert p.match("tag create motd [Welcome to the server]") == {
        "key": "motd",
        "value": "Welcome to the server",
    }


def test_quoted_param_with_double_quotes():
    p = Pattern.compile("tag create {key} [value]")
    assert p.match('tag create motd "hello there"') == {"key": "motd", "value": "hello there"}


def test_quoted_param_nested_brackets_are_balanced():
    p = Pattern.compile("tag create {key} [value]")
    assert p.match("tag create k [a [b] c]") == {"key": "k", "value": "a [b] c"}


def test_quoted_param_code_fence_kept():
    p = Pattern.compile("godbolt [code]")
    src = "```rust\nfn main() {}\n```"
    assert p.match(f"godbolt {src}") == {"code": src}


def test_unterminated_quote_does_not_match():
    p = Pattern.compile("tag create {key} [value]")
    assert p.match("tag create motd [never closed") is None
    assert p.match('tag create motd "never closed') is None
    assert p.match("godbolt ```fn main() {}") is None


def test_lenient_quoted_captures_single_word():
    p = Pattern.compile("prefix add [prefix]")
    assert p.match("prefix add !!") == {"prefix": "!!"}
    # A second word is left over, so the whole pattern fails
    assert p.match("prefix add two words") is None


def test_trailing_input_fails_match():
    p = Pattern.compile("ban {user}")
    assert p.match("ban <@1> 10m") is None
    assert p.match("ban <@1>") == {"user": "<@1>"}


def test_missing_param_fails_match():
    assert Pattern.compile("ban {user}").match("ban") is None
    assert Pattern.compile("ban {user}").match("ban   ") is None


def test_static_requires_word_boundary():
    p = Pattern.compile("tag {key}")
    assert p.match("tags") is None
    assert p.match("tagx motd") is None
    assert Pattern.compile("tags").match("tag") is None


def test_quoted_capture_must_end_on_boundary():
    p = Pattern.compile("tag create {key} [value]")
    assert p.match("tag create k [abc]def") is None


def test_static_case_insensitive_flag():
    p = Pattern.compile("tag {key}")
    assert p.match("TAG Motd") is None
    # Captured values keep their case
    assert p.match("TAG Motd", case_insensitive=True) == {"key": "Motd"}


def test_extra_whitespace_between_tokens():
    p = Pattern.compile("role {user} {role}")
    assert p.match("  role   <@1>\t<@&2>  ") == {"user": "<@1>", "role": "<@&2>"}


def test_failed_match_has_no_partial_captures():
    p = Pattern.compile("slowmode {channel} {seconds} {duration}")
    assert p.match("slowmode general 10") is None


def test_usage_path_and_param_names():
    p = Pattern.compile("tag create {key} [value]")
    assert p.usage == "tag create {key} [value]"
    assert p.path == ("tag", "create")
    assert p.param_names == ("key", "value")
    assert Pattern.compile("godbolt {rustc} [code]").path == ("godbolt",)


# Words that never contain whitespace or delimiter characters
words = st.text(
    alphabet=st.characters(whitelist_categories=("Ll", "Lu", "Nd")) | st.sampled_from("<@>#!&_-."),
    min_size=1,
    max_size=12,
)
phrases = st.lists(words, min_size=1, max_size=5).map(" ".join)


@given(key=words, value=phrases)
def test_fill_then_match_recovers_values(key: str, value: str):
    p = Pattern.compile("tag create {key} [value]")
    assert p.match(p.fill({"key": key, "value": value})) == {"key": key, "value": value}


@given(text=st.text(max_size=60))
def test_match_is_deterministic(text: str):
    p = Pattern.compile("tag create {key} [value]")
    first = p.match(text)
    assert first == p.match(text)
    if first is not None:
        assert set(first) == {"key", "value"}
