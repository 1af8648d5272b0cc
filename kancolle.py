"""Kancolle wiki ship list and ship quote pages."""

import re
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence

from bs4 import BeautifulSoup, Comment, NavigableString, Tag

from config import KancolleOptions
from errors import ParseError
from models import Language, RawTranslation
from parsers import BaseParser, build_translation
from quote_id import kancolle_key

SHIP_LINK_SELECTOR = '.mw-parser-output span[id^="shiplistkai-"] a:not(.mw-redirect)'
QUOTE_TEMPLATES = ("ShipquoteKai", "SeasonalQuote")
REQUIRED_PARAMETERS = ("scenario", "translation", "origin")

WIKI_LINK = re.compile(r"\[\[(?:.*?\|)?(.*?)\]\]")

# Checked in order; the first parameter present names the remodel
REMODEL_NAMES = [
    ("kai", "Kai"),
    ("kai2", "Kai Ni"),
    ("kai3", "Kai San"),
    ("form2", None),
    ("kai2b", "Kai Ni B"),
    ("kaic", "Kai Ni C"),
    ("kai2c", "Kai Ni C"),
    ("kai2d", "Kai Ni D"),
    ("kai2e", "Kai Ni E"),
    ("kai2toku", "Kai Ni Toku"),
    ("kaigo", "Kai Ni Go"),
    ("kai2j", "Kai Ni Juu"),
]


class Ship(NamedTuple):
    ship_number: int
    english_name: str
    japanese_name: str


class ShipPage(NamedTuple):
    ship: Ship
    parse_tree: str


def get_text_nodes(element: Optional[Tag]) -> Optional[str]:
    """Concatenated direct text children, ignoring child elements."""
    if element is None:
        return None
    return "".join(
        str(child)
        for child in element.children
        if isinstance(child, NavigableString) and not isinstance(child, Comment)
    ).strip()


def parse_ship_list(html: str, page: str = "Ship list") -> List[Ship]:
    soup = BeautifulSoup(html, "lxml")
    ships = []
    seen_links = set()

    for link in soup.select(SHIP_LINK_SELECTOR):
        # Verniy links straight to Hibiki, so the same href can appear twice
        href = link.get("href")
        if href in seen_links:
            continue
        seen_links.add(href)

        english_name = link.get_text().strip()
        japanese_name = get_text_nodes(link.parent)

        row = link.find_parent("tr")
        first_cell = row.find(True) if row is not None else None
        try:
            ship_number = int(get_text_nodes(first_cell))
        except (TypeError, ValueError):
            raise ParseError(
                page, reason=f"could not find the ship number for {english_name}"
            ) from None

        ships.append(Ship(ship_number, english_name, japanese_name or english_name))

    if not ships:
        raise ParseError(page, reason="found zero ships; the selector may be broken")

    # The "Japanese" name is whatever is shown in game, which can be English
    if not any(s.japanese_name != s.english_name for s in ships):
        raise ParseError(page, reason="no ship has a Japanese name; the table may have changed")

    numbers = [s.ship_number for s in ships]
    if len(set(numbers)) != len(numbers):
        raise ParseError(page, reason="duplicate ship numbers would produce duplicate ids")

    return ships


class WikiTemplate:
    """A template call in a MediaWiki XML parse tree."""

    def __init__(self, element: Tag):
        if element.name != "template":
            raise ValueError(f"<{element.name}> is not a template element")

        self.name = get_text_nodes(element.find("title", recursive=False))
        self.parameters: Dict[str, Tag] = {}
        for part in element.find_all("part", recursive=False):
            name = part.find("name", recursive=False)
            key = name.get("index") or get_text_nodes(name)
            self.parameters[key] = part.find("value", recursive=False)

    def __contains__(self, key: str) -> bool:
        return key in self.parameters

    def __getitem__(self, key: str) -> str:
        return self.get_string(key)

    def get_xml(self, key: str) -> Tag:
        return self.parameters[key]

    def get_string(self, key: str) -> str:
        """Trimmed text of the parameter, excluding child elements such as <ext>.
        Raises KeyError if the parameter is absent."""
        return get_text_nodes(self.parameters[key])

    def get_string_or_default(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if key not in self.parameters:
            return default
        return get_text_nodes(self.parameters[key])

    def __repr__(self):
        return f"WikiTemplate({self.name!r}, {sorted(self.parameters)})"


def find_templates(parse_tree: str, names: Sequence[str]) -> List[WikiTemplate]:
    soup = BeautifulSoup(parse_tree, "xml")
    wanted = {name.lower() for name in names}
    templates = []
    for element in soup.find_all("template"):
        template = WikiTemplate(element)
        if (template.name or "").lower() in wanted:
            templates.append(template)
    return templates


def get_remodel_name(template: WikiTemplate) -> Optional[str]:
    for key, name in REMODEL_NAMES:
        if key in template:
            return name if name is not None else template[key]
    return None


def format_context(template: WikiTemplate) -> str:
    context = template["scenario"]

    # Hourlies are written as "00", "01", ...
    if len(context) == 2:
        context += ":00"

    # Seasonal quotes often link to the event page
    context = WIKI_LINK.sub(r"\1", context)

    remodel = get_remodel_name(template)
    if remodel:
        context += f" ({remodel})"

    return context


def extract_notes(template: WikiTemplate) -> str:
    notes = []
    seasonal_notes = template.get_string_or_default("notes")
    if seasonal_notes is not None:
        notes.append(seasonal_notes)

    for ext in template.get_xml("translation").find_all("ext"):
        if get_text_nodes(ext.find("name", recursive=False)) == "ref":
            inner = ext.find("inner", recursive=False)
            if inner is not None:
                notes.append(get_text_nodes(inner))

    return "\n".join(notes)


def get_audio_file(page_name: str, template: WikiTemplate) -> str:
    """The ``audio`` parameter if present, otherwise the file name pieced
    together the same way the ShipquoteKai template does it."""
    audio = template.get_string_or_default("audio")
    if audio is not None:
        return audio

    name = "Ship Voice " + (template.get_string_or_default("name") or page_name)

    remodel = get_remodel_name(template)
    if remodel:
        name += f" {remodel}"

    scenario = template["scenario"]
    line = template.get_string_or_default("line")
    if line is not None:
        suffix = line
    elif len(scenario) > 2 and scenario[2] == ":":
        suffix = scenario[:2]
    elif scenario == "Air Battle/Daytime Spotting/Night Battle Attack":
        suffix = "Night Attack"
    else:
        suffix = scenario

    return f"{name} {suffix}.mp3"


class KancolleParser(BaseParser):
    """Turns a ship's wiki page into English/Japanese translation pairs.

    Both languages come from the same page, so the language argument is only
    a hint and is ignored.
    """

    options: KancolleOptions

    def __init__(self, options: KancolleOptions = None):
        super().__init__(options or KancolleOptions())

    def parse(self, page: ShipPage, language: Language = Language.Multilingual) -> Iterator[RawTranslation]:
        ship = page.ship
        index = 0

        for template in find_templates(page.parse_tree, QUOTE_TEMPLATES):
            missing = [p for p in REQUIRED_PARAMETERS if p not in template]
            if missing:
                print(f"    ⚠ One of {ship.english_name}'s quotes is missing {missing}")
                continue

            key = kancolle_key(ship.ship_number, index)
            context = format_context(template)

            yield build_translation(
                ship.english_name,
                None,
                key=key,
                language=Language.English,
                text=template["translation"],
                speaker_name=ship.english_name,
                context=context,
                notes=extract_notes(template),
            )
            yield build_translation(
                ship.english_name,
                None,
                key=key,
                language=Language.Japanese,
                text=template["origin"],
                speaker_name=ship.japanese_name,
                context=context,
                audio_file_path=get_audio_file(ship.english_name, template),
            )
            index += 1
