import json

import pytest

from config import CstParserOptions, KancolleOptions, TsvParserOptions, load_job_options
from errors import ValidationError
from models import Language, Source

CONFIG = {
    "Senren＊Banka": {
        "parser": "cst",
        "base_directory": "games/senren",
        "dialogue_files": {"en": ["scene/*.cst"], "ja": ["scene_ja/*.cst", "!scene_ja/debug*"]},
        "audio_directories": {"ja": "voice"},
        "excluded_lines_by_audio_file": ["mur001"],
    },
    "BaldursGate3": {
        "parser": "TSV",
        "columns": ["key", "language", "text"],
        "dialogue_files": {"multilingual": ["dialogue.tsv"]},
        "speaker_name_map": {"en": {"narr": "Narrator"}},
    },
    "Skyrim": {"parser": "xml"},
    "Maitetsu": {"parser": "tsv", "columns": ["key", "text"], "required_languages": ["multilingual"]},
    "Witcher3": {"parser": "tsv", "columns": ["text"]},
}


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "import.json"
    path.write_text(json.dumps(CONFIG, ensure_ascii=False), encoding="utf-8")
    return str(path)


def test_section_by_title(config_path):
    options = load_job_options(Source.SenrenBanka, config_path)
    assert isinstance(options, CstParserOptions)
    assert options.source == Source.SenrenBanka
    assert options.dialogue_files[Language.Japanese] == ["scene_ja/*.cst", "!scene_ja/debug*"]
    assert options.audio_directories == {Language.Japanese: "voice"}
    assert options.excluded_lines_by_audio_file == {"mur001"}
    assert options.required_languages == {Language.English, Language.Japanese}
    assert not options.dump_cst


def test_section_by_name(config_path):
    options = load_job_options(Source.BaldursGate3, config_path)
    assert isinstance(options, TsvParserOptions)
    assert options.parser == "tsv"
    assert options.speaker_name_map == {Language.English: {"narr": "Narrator"}}


@pytest.mark.parametrize("source", [Source.Skyrim, Source.Maitetsu, Source.Witcher3])
def test_invalid_sections(config_path, source):
    with pytest.raises(ValidationError):
        load_job_options(source, config_path)


def test_missing_section(config_path):
    with pytest.raises(ValidationError):
        load_job_options(Source.SteinsGate, config_path)


def test_kancolle_runs_without_config(tmp_path, config_path):
    assert isinstance(load_job_options(Source.Kancolle, str(tmp_path / "none.json")), KancolleOptions)
    options = load_job_options(Source.Kancolle, config_path)
    assert options.voice_lines
    assert options.download_audio
    assert options.ship_list_page == "Ship list"


def test_other_sources_need_a_config(tmp_path):
    with pytest.raises(ValidationError):
        load_job_options(Source.Maitetsu, str(tmp_path / "none.json"))


def test_broken_json(tmp_path):
    path = tmp_path / "import.json"
    path.write_text("{", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_job_options(Source.Maitetsu, str(path))
