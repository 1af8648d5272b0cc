import re
from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, NamedTuple, Optional, Protocol, Sequence, Set, Tuple

from nltk.stem.snowball import SnowballStemmer
from sudachipy import dictionary, tokenizer

from errors import OffsetRecoveryError
from models import Language, Token, Word

ENGLISH_TOKEN = re.compile(r"[^\W\d_]+(?:['’][^\W\d_]+)*|\d+(?:[,.]\d+)*")
POSSESSIVE_SUFFIXES = ("'s", "’s")

SYMBOL_POS = {"補助記号", "記号", "空白"}
INFLECTING_POS = {"動詞", "形容詞", "助動詞"}
CONJUNCTIVE_PARTICLES = {"ば", "て", "で"}


# Tokenizer classes
class BaseTokenizer(ABC):
    @abstractmethod
    def tokenize(self, text: str) -> List[Token]:
        pass

    @abstractmethod
    def extract_words(self, text: str) -> List[Word]:
        pass

    def get_word_count(self, text: str) -> int:
        return len(self.tokenize(text))


class EnglishTokenizer(BaseTokenizer):
    """Letter runs with internal apostrophes, or digit runs with internal
    separators. Punctuation never forms a token."""

    def __init__(self):
        self.stemmer = SnowballStemmer("english")

    def tokenize(self, text: str) -> List[Token]:
        return [Token(m.start(), m.end()) for m in ENGLISH_TOKEN.finditer(text)]

    def extract_words(self, text: str) -> List[Word]:
        words = []
        for start, end in self.tokenize(text):
            surface = strip_possessive(text[start:end])
            words.append(Word(surface, self.stem(surface)))
        return words

    def stem(self, word: str) -> str:
        return self.stemmer.stem(word.replace("’", "'"))


def strip_possessive(word: str) -> str:
    for suffix in POSSESSIVE_SUFFIXES:
        if word.endswith(suffix) and len(word) > len(suffix):
            return word[: -len(suffix)]
    return word


class LexicalNode(NamedTuple):
    """A minimal segment from the morphological analyzer.

    ``unit`` is the index of the longest-match unit the node belongs to and
    ``unit_lemma`` that unit's dictionary form.
    """

    index: int
    surface: str
    pos: Tuple[str, ...]
    lemma: str
    unit: int
    unit_lemma: str


class Segmenter(Protocol):
    def segment(self, text: str) -> List[LexicalNode]: ...


Grouper = Callable[[Sequence[LexicalNode]], Iterable[List[LexicalNode]]]


class SudachiSegmenter:
    def __init__(self, dict_type: str = "core"):
        self.tokenizer_obj = dictionary.Dictionary(dict=dict_type).create()
        self.unit_mode = tokenizer.Tokenizer.SplitMode.C
        self.node_mode = tokenizer.Tokenizer.SplitMode.A
        print("✓ SudachiPy tokenizer initialized")

    def segment(self, text: str) -> List[LexicalNode]:
        nodes: List[LexicalNode] = []
        for unit, morpheme in enumerate(self.tokenizer_obj.tokenize(text, self.unit_mode)):
            unit_lemma = morpheme.dictionary_form()
            for part in morpheme.split(self.node_mode):
                nodes.append(
                    LexicalNode(
                        index=len(nodes),
                        surface=part.surface(),
                        pos=tuple(part.part_of_speech()),
                        lemma=part.dictionary_form(),
                        unit=unit,
                        unit_lemma=unit_lemma,
                    )
                )
        return nodes


def _pos(node: LexicalNode, level: int) -> str:
    return node.pos[level] if len(node.pos) > level else ""


def attaches_to_inflection(node: LexicalNode) -> bool:
    """Auxiliaries, conjunctive ば/て/で and dependent verbs or adjectives
    belong to the inflecting word before them."""
    if _pos(node, 0) == "助動詞":
        return True
    if _pos(node, 1) == "接続助詞" and node.surface in CONJUNCTIVE_PARTICLES:
        return True
    return _pos(node, 0) in ("動詞", "形容詞") and _pos(node, 2) == "非自立可能"


def group_words(nodes: Sequence[LexicalNode]) -> Iterable[List[LexicalNode]]:
    """Joins minimal nodes back into dictionary words.

    Nodes of one longest-match unit always stay together; an inflecting head
    also takes the auxiliaries and particles that conjugate it
    (上がれ+ば, 見せ+でき+ます).
    """
    i = 0
    while i < len(nodes):
        head = nodes[i]
        j = i + 1
        while j < len(nodes) and nodes[j].unit == head.unit:
            j += 1

        if _pos(head, 0) in INFLECTING_POS:
            while j < len(nodes) and attaches_to_inflection(nodes[j]):
                unit = nodes[j].unit
                while j < len(nodes) and nodes[j].unit == unit:
                    j += 1

        yield list(nodes[i:j])
        i = j


class JapaneseTokenizer(BaseTokenizer):
    """Dictionary words located in the original text.

    Offsets are recovered by searching forward for each node's surface, never
    trusting positions reported by the analyzer. Every node is used by at most
    one word.
    """

    def __init__(self, segmenter: Optional[Segmenter] = None, grouper: Grouper = group_words):
        self.segmenter = segmenter or SudachiSegmenter()
        self.grouper = grouper

    def _locate(self, text: str) -> List[Tuple[Token, str]]:
        results = []
        consumed: Set[int] = set()
        cursor = 0

        for group in self.grouper(self.segmenter.segment(text)):
            if not group or _pos(group[0], 0) in SYMBOL_POS:
                continue
            if any(node.index in consumed for node in group):
                continue
            consumed.update(node.index for node in group)

            start = end = None
            for node in group:
                surface = node.surface.strip()
                if not any(ch.isalnum() for ch in surface):
                    continue
                found = text.find(surface, cursor)
                if found < 0:
                    raise OffsetRecoveryError(text, surface, cursor)
                if start is None:
                    start = found
                end = cursor = found + len(surface)

            if start is not None:
                results.append((Token(start, end), group[0].unit_lemma))

        return results

    def tokenize(self, text: str) -> List[Token]:
        return [token for token, _ in self._locate(text)]

    def extract_words(self, text: str) -> List[Word]:
        # The dictionary form is the only sensible search key: 上がれば -> 上がる
        return [Word(text[start:end], lemma) for (start, end), lemma in self._locate(text)]


def get_tokenizer(language) -> BaseTokenizer:
    language = Language.parse(language) if isinstance(language, str) else language
    if language == Language.English:
        return EnglishTokenizer()
    elif language == Language.Japanese:
        return JapaneseTokenizer()
    else:
        raise ValueError(f"No tokenizer for language: {language}")
