from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Source(IntEnum):
    """Game a quote comes from. The ordinal is stored inside quote ids, so
    existing values must never be renumbered."""

    Kancolle = 0
    Skyrim = 1
    Witcher3 = 2
    GSenjouNoMaou = 3
    NekoparaVol1 = 4
    NekoparaVol2 = 5
    Maitetsu = 6
    SenrenBanka = 7
    NewtonToRingoNoKi = 8
    BaldursGate3 = 9
    GoGoNippon = 10
    SteinsGate = 11

    @property
    def title(self) -> str:
        return SOURCE_TITLES.get(self, self.name)

    @classmethod
    def parse(cls, value: str) -> "Source":
        for source in cls:
            if value.lower() in (source.name.lower(), source.title.lower()):
                return source
        raise ValueError(f"Unknown source: {value}")


SOURCE_TITLES = {
    Source.Witcher3: "Witcher 3",
    Source.GSenjouNoMaou: "G-senjou no Maou",
    Source.NekoparaVol1: "Nekopara Vol. 1",
    Source.NekoparaVol2: "Nekopara Vol. 2",
    Source.SenrenBanka: "Senren＊Banka",
    Source.NewtonToRingoNoKi: "Newton to Ringo no Ki",
    Source.BaldursGate3: "Baldur's Gate 3",
    Source.GoGoNippon: "Go! Go! Nippon!",
    Source.SteinsGate: "Steins;Gate",
}


class Language(str, Enum):
    English = "en"
    Japanese = "ja"
    # Parse hint only: the language is read from the file itself
    Multilingual = "multilingual"

    @classmethod
    def parse(cls, value: str) -> "Language":
        value = value.strip().lower()
        aliases = {"english": "en", "japanese": "ja"}
        return cls(aliases.get(value, value))


class RawTranslation(BaseModel):
    """One language side of a quote as emitted by a parser."""

    model_config = ConfigDict(frozen=True)

    key: int
    language: Language
    text: str
    audio_file_path: Optional[str] = None
    speaker_name: str = ""
    context: str = ""
    notes: str = ""

    @field_validator("language")
    @classmethod
    def _concrete_language(cls, value: Language) -> Language:
        if value == Language.Multilingual:
            raise ValueError("a translation must have a concrete language")
        return value

    @field_validator("key")
    @classmethod
    def _key_range(cls, value: int) -> int:
        if not 0 <= value < 1 << 48:
            raise ValueError(f"key {value} does not fit in 48 bits")
        return value


class AudioFile(BaseModel):
    model_config = ConfigDict(frozen=True)

    hash: str
    extension: str
    original_name: Optional[str] = None
    original_last_modified: Optional[datetime] = None


class Translation(BaseModel):
    model_config = ConfigDict(frozen=True)

    speaker_name: str = ""
    context: str = ""
    text: str
    notes: str = ""
    word_count: int = 0
    words: Tuple[str, ...] = ()
    audio_file: Optional[str] = None
    # Where the audio was found; used for importing and not stored
    audio_file_path: Optional[str] = Field(default=None, exclude=True)


class Quote(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    source: Source
    english: Translation
    japanese: Translation
    date_imported: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class VoiceLine(Quote):
    # Presentation order among lines of the same speaker; not part of identity
    sort_order: int


class Token(NamedTuple):
    start: int
    end: int


class Word(NamedTuple):
    surface: str
    normalized: str


@dataclass(frozen=True)
class IncompleteRecord:
    source: Source
    key: int
    present_languages: Tuple[Language, ...]
    missing_languages: Tuple[Language, ...]


@dataclass
class SkippedRecord:
    quote_id: int
    reason: str


@dataclass
class ImportReport:
    source: Source
    files: int = 0
    quotes: int = 0
    failed_files: List[str] = field(default_factory=list)
    skipped: List[SkippedRecord] = field(default_factory=list)
    incomplete: List[IncompleteRecord] = field(default_factory=list)
