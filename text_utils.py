import re

KANJI_OR_HIRAGANA = re.compile(r"[一-龠ぁ-ゔ]")
WHITESPACE = re.compile(r"\s+")
NEWLINES = re.compile(r"\r|\n")

OPENING_QUOTES = ('"', "“", "「", "『")
CLOSING_QUOTES = ('"', "”", "」", "』")


def trim_quote_text(text: str) -> str:
    """Strip whitespace and one pair of wrapping quote marks.

    Text such as '"Blah," said blah. "Blah!"' is mishandled; that is rare
    enough to accept.
    """
    text = text.strip()
    if text and text[0] in OPENING_QUOTES and text[-1] in CLOSING_QUOTES:
        text = text[1:-1].strip()
    return text


def format_english_text(text: str) -> str:
    return WHITESPACE.sub(" ", trim_quote_text(text))


def format_japanese_text(text: str) -> str:
    return NEWLINES.sub("", trim_quote_text(text))


def contains_kanji_or_hiragana(text: str) -> bool:
    """True for real Japanese; rejects untranslated lines and katakana-only
    grunts or sound effects."""
    return KANJI_OR_HIRAGANA.search(text) is not None
