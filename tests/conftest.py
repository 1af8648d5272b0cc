import pytest

from models import Language, Token, Word
from word_extractors import BaseTokenizer, EnglishTokenizer


class CharTokenizer(BaseTokenizer):
    """One token per alphanumeric character; keeps pipeline tests away from
    the dictionary download."""

    def tokenize(self, text):
        return [Token(i, i + 1) for i, ch in enumerate(text) if ch.isalnum()]

    def extract_words(self, text):
        return [Word(text[s:e], text[s:e]) for s, e in self.tokenize(text)]


@pytest.fixture
def tokenizers():
    return {Language.English: EnglishTokenizer(), Language.Japanese: CharTokenizer()}
