import asyncio

import httpx
import pytest
from bs4 import BeautifulSoup

from errors import ParseError, WikiRedirectError
from kancolle import (
    KancolleParser,
    Ship,
    ShipPage,
    WikiTemplate,
    find_templates,
    format_context,
    get_audio_file,
    parse_ship_list,
)
from models import Language
from quote_id import kancolle_key
from wiki import WikiClient

SHIP_LIST = """
<div class="mw-parser-output"><table>
<tr><td>1</td><td><span id="shiplistkai-Mutsuki"><a href="/Mutsuki" title="Mutsuki">Mutsuki</a><br/>睦月</span></td></tr>
<tr><td>147</td><td><span id="shiplistkai-Verniy"><a href="/Hibiki" title="Hibiki">Verniy</a><br/>Верный</span></td></tr>
<tr><td>35</td><td><span id="shiplistkai-Hibiki"><a href="/Hibiki" title="Hibiki">Hibiki</a><br/>響</span></td></tr>
<tr><td>99</td><td><span id="shiplistkai-Old"><a href="/Old" class="mw-redirect">Old</a><br/>古</span></td></tr>
</table></div>
"""

PARSE_TREE = """<root><template><title>ShipquoteKai</title><part><name>scenario</name>=<value>Introduction</value></part><part><name>origin</name>=<value>睦月です。</value></part><part><name>translation</name>=<value>I'm Mutsuki.<ext><name>ref</name><attr/><inner>A pun.</inner><close>&lt;/ref&gt;</close></ext></value></part></template>
<template><title>ShipquoteKai</title><part><name>scenario</name>=<value>05</value></part><part><name>kai2</name>=<value>y</value></part><part><name>origin</name>=<value>朝だよ</value></part><part><name>translation</name>=<value>It's morning</value></part></template>
<template><title>ShipquoteKai</title><part><name>scenario</name>=<value>Broken</value></part></template>
<template><title>seasonalquote</title><part><name>scenario</name>=<value>[[Christmas 2020|Christmas]]</value></part><part><name>origin</name>=<value>メリークリスマス</value></part><part><name>translation</name>=<value>Merry Christmas</value></part><part><name>notes</name>=<value>Seasonal</value></part><part><name>audio</name>=<value>Mutsuki Christmas 2020.mp3</value></part></template>
<template><title>Other</title><part><name index="1"/>=<value>positional</value></part></template></root>"""

MUTSUKI = Ship(1, "Mutsuki", "睦月")


def template_from(xml):
    return WikiTemplate(BeautifulSoup(xml, "xml").find("template"))


def test_ship_list():
    ships = parse_ship_list(SHIP_LIST)
    # The second Hibiki link has the same href and the redirect is skipped
    assert ships == [Ship(1, "Mutsuki", "睦月"), Ship(147, "Verniy", "Верный")]


def test_ship_list_without_ships_is_an_error():
    with pytest.raises(ParseError):
        parse_ship_list("<div class='mw-parser-output'></div>")


def test_ship_list_without_japanese_names_is_an_error():
    html = SHIP_LIST.replace("<br/>睦月", "").replace("<br/>Верный", "")
    with pytest.raises(ParseError):
        parse_ship_list(html)


def test_ship_list_with_duplicate_numbers_is_an_error():
    with pytest.raises(ParseError):
        parse_ship_list(SHIP_LIST.replace("<td>147</td>", "<td>1</td>"))


def test_template_parameters():
    (template,) = find_templates(PARSE_TREE, ["Other"])
    assert template.name == "Other"
    assert template["1"] == "positional"
    assert "1" in template
    assert template.get_string_or_default("missing") is None
    with pytest.raises(KeyError):
        template.get_string("missing")


def test_finds_templates_case_insensitively():
    templates = find_templates(PARSE_TREE, ["ShipquoteKai", "SeasonalQuote"])
    assert len(templates) == 4


def test_context_formatting():
    templates = find_templates(PARSE_TREE, ["ShipquoteKai", "SeasonalQuote"])
    assert format_context(templates[0]) == "Introduction"
    assert format_context(templates[1]) == "05:00 (Kai Ni)"
    assert format_context(templates[3]) == "Christmas"


def test_form2_names_the_remodel():
    template = template_from(
        "<template><title>ShipquoteKai</title><part><name>scenario</name><value>Sunk</value></part>"
        "<part><name>form2</name><value>Kai Ni Kou</value></part></template>"
    )
    assert format_context(template) == "Sunk (Kai Ni Kou)"
    assert get_audio_file("Chitose", template) == "Ship Voice Chitose Kai Ni Kou Sunk.mp3"


def test_audio_file_names():
    templates = find_templates(PARSE_TREE, ["ShipquoteKai", "SeasonalQuote"])
    assert get_audio_file("Mutsuki", templates[0]) == "Ship Voice Mutsuki Introduction.mp3"
    assert get_audio_file("Mutsuki", templates[3]) == "Mutsuki Christmas 2020.mp3"

    hourly = template_from(
        "<template><title>ShipquoteKai</title><part><name>scenario</name><value>05:30</value></part>"
        "<part><name>name</name><value>Mutsuki Kai</value></part></template>"
    )
    assert get_audio_file("Mutsuki", hourly) == "Ship Voice Mutsuki Kai 05.mp3"

    night = template_from(
        "<template><title>ShipquoteKai</title>"
        "<part><name>scenario</name><value>Air Battle/Daytime Spotting/Night Battle Attack</value></part></template>"
    )
    assert get_audio_file("Mutsuki", night) == "Ship Voice Mutsuki Night Attack.mp3"


def test_parser_pairs_languages():
    rows = list(KancolleParser().parse(ShipPage(MUTSUKI, PARSE_TREE)))

    # Template missing required parameters is skipped without using an index
    assert [r.key for r in rows] == [kancolle_key(1, i) for i in (0, 0, 1, 1, 2, 2)]
    english, japanese = rows[0], rows[1]
    assert english.language == Language.English
    assert english.text == "I'm Mutsuki."
    assert english.notes == "A pun."
    assert english.speaker_name == "Mutsuki"
    assert japanese.language == Language.Japanese
    assert japanese.text == "睦月です。"
    assert japanese.speaker_name == "睦月"
    assert japanese.audio_file_path == "Ship Voice Mutsuki Introduction.mp3"
    assert english.audio_file_path is None
    assert rows[4].notes == "Seasonal"


def api_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def test_wiki_client_fetches_parse_tree():
    def handler(request):
        assert request.url.params["page"] == "Mutsuki"
        assert request.url.params["prop"] == "parsetree"
        assert request.url.params["formatversion"] == "2"
        return httpx.Response(200, json={"parse": {"parsetree": PARSE_TREE}})

    async def run():
        async with api_client(handler) as client:
            return await WikiClient(client, "https://wiki.example/api.php").get_parse_tree("Mutsuki")

    assert asyncio.run(run()) == PARSE_TREE


def test_wiki_client_rejects_redirects():
    def handler(request):
        return httpx.Response(200, json={"parse": {"parsetree": "<root>#REDIRECT [[Hibiki]]</root>"}})

    async def run():
        async with api_client(handler) as client:
            await WikiClient(client, "https://wiki.example/api.php").get_parse_tree("Verniy")

    with pytest.raises(WikiRedirectError) as e:
        asyncio.run(run())
    assert e.value.target == "Hibiki"


def test_wiki_client_missing_parse_tree():
    async def run():
        async with api_client(lambda r: httpx.Response(200, json={"parse": {}})) as client:
            await WikiClient(client, "https://wiki.example/api.php").get_parse_tree("Nope")

    with pytest.raises(ParseError):
        asyncio.run(run())


def test_wiki_client_downloads_files():
    def handler(request):
        if request.url.path.endswith("Missing.mp3"):
            return httpx.Response(404)
        assert request.url.path == "/Special:Redirect/file/Ship_Voice_Mutsuki_Introduction.mp3"
        return httpx.Response(200, content=b"ID3data")

    async def run():
        async with api_client(handler) as client:
            wiki = WikiClient(client, "https://wiki.example/api.php", "https://wiki.example")
            return (
                await wiki.download_file("Ship Voice Mutsuki Introduction.mp3"),
                await wiki.download_file("Missing.mp3"),
            )

    assert asyncio.run(run()) == (b"ID3data", None)
