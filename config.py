"""Process settings and per-source import job options."""

import json
import os
from pathlib import Path
from typing import Dict, List, Literal, Optional, Set, Union

import pydantic
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from errors import ValidationError
from models import Language, Source

load_dotenv()

OUTPUT_DIR = os.getenv("OUTPUT_DIR", "./output")
IMPORT_CONFIG = os.getenv("IMPORT_CONFIG", "./import.json")
WIKI_API_URL = os.getenv("WIKI_API_URL", "https://en.kancollewiki.net/w/api.php")
WIKI_BASE_URL = os.getenv("WIKI_BASE_URL", "https://en.kancollewiki.net/")
USER_AGENT = os.getenv("USER_AGENT", "quote-importer/0.1 (batch import)")
RATE_LIMIT_WINDOW = float(os.getenv("RATE_LIMIT_WINDOW", "3.0"))  # seconds per request per host
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60"))
MAX_CONCURRENT_WORKERS = int(os.getenv("MAX_CONCURRENT_WORKERS", "4"))
WORK_QUEUE_SIZE = int(os.getenv("WORK_QUEUE_SIZE", "16"))

# The upper bound only keeps runaway lines out of downstream alignment
MIN_ENGLISH_WORDS = int(os.getenv("MIN_ENGLISH_WORDS", "2"))
MAX_ENGLISH_WORDS = int(os.getenv("MAX_ENGLISH_WORDS", "100"))


class ParserOptions(BaseModel):
    parser: str
    source: Source
    base_directory: str = "."
    # Glob patterns per language relative to base_directory; "!" excludes
    dialogue_files: Dict[Language, List[str]] = Field(default_factory=dict)
    audio_directories: Dict[Language, str] = Field(default_factory=dict)
    speaker_name_map: Dict[Language, Dict[str, str]] = Field(default_factory=dict)
    required_languages: Set[Language] = Field(
        default_factory=lambda: {Language.English, Language.Japanese}
    )
    # Produce VoiceLine records instead of plain quotes
    voice_lines: bool = False

    @field_validator("required_languages")
    @classmethod
    def _concrete_languages(cls, value: Set[Language]) -> Set[Language]:
        if not value:
            raise ValueError("at least one language is required")
        if Language.Multilingual in value:
            raise ValueError("multilingual is not a language that can be required")
        return value


TSV_COLUMNS = (
    "key",
    "language",
    "text",
    "audio_file_path",
    "speaker_name",
    "context",
    "notes",
)


class TsvParserOptions(ParserOptions):
    parser: Literal["tsv"] = "tsv"
    columns: List[str]

    @field_validator("columns")
    @classmethod
    def _known_columns(cls, value: List[str]) -> List[str]:
        unknown = [c for c in value if c not in TSV_COLUMNS]
        if unknown:
            raise ValueError(f"unknown columns: {unknown}")
        if len(set(value)) != len(value):
            raise ValueError("columns may only be listed once")
        if "key" not in value or "text" not in value:
            raise ValueError("the key and text columns are required")
        return value

    @model_validator(mode="after")
    def _language_column_for_multilingual(self):
        if Language.Multilingual in self.dialogue_files and "language" not in self.columns:
            raise ValueError("multilingual dialogue files need a language column")
        return self


class CstNodeTypes(BaseModel):
    """Node type names produced by the scene decoder."""

    sound: str = "SoundPlayCommand"
    name: str = "SceneName"
    message: str = "SceneMessage"
    input: str = "SceneInput"
    page: str = "ScenePage"


class CstParserOptions(ParserOptions):
    parser: Literal["cst"] = "cst"
    dump_cst: bool = False
    # Audio file names (without extension) whose lines are dropped
    excluded_lines_by_audio_file: Set[str] = Field(default_factory=set)
    node_types: CstNodeTypes = Field(default_factory=CstNodeTypes)


class KancolleOptions(ParserOptions):
    parser: Literal["kancolle"] = "kancolle"
    source: Source = Source.Kancolle
    ship_list_page: str = "Ship list"
    download_audio: bool = True
    voice_lines: bool = True


JobOptions = Union[TsvParserOptions, CstParserOptions, KancolleOptions]

OPTION_CLASSES = {
    "tsv": TsvParserOptions,
    "cst": CstParserOptions,
    "kancolle": KancolleOptions,
}


def parse_job_options(source: Source, section: dict) -> JobOptions:
    """Validate one job section. The source is taken from the section name."""
    data = dict(section)
    data["source"] = source
    parser_name = str(data.get("parser", "kancolle" if source == Source.Kancolle else "")).lower()
    options_class = OPTION_CLASSES.get(parser_name)
    if options_class is None:
        raise ValidationError(f"{source.name}: unknown parser {parser_name!r}")
    data["parser"] = parser_name
    try:
        return options_class.model_validate(data)
    except pydantic.ValidationError as e:
        raise ValidationError(f"{source.name}: invalid options\n{e}") from e


def load_job_options(source: Source, path: Optional[str] = None) -> JobOptions:
    config_path = Path(path or IMPORT_CONFIG)
    if not config_path.exists():
        if source == Source.Kancolle:
            return KancolleOptions()
        raise ValidationError(f"Import config not found: {config_path.absolute()}")

    with open(config_path, "r", encoding="utf-8") as f:
        try:
            config = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"Import config is not valid JSON: {e}") from e

    for name, section in config.items():
        try:
            section_source = Source.parse(name)
        except ValueError:
            continue
        if section_source == source:
            return parse_job_options(source, section)

    if source == Source.Kancolle:
        return KancolleOptions()
    raise ValidationError(f"No section for {source.name} in {config_path}")
