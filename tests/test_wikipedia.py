import pytest

from conftest import FakeTransport, json_response
from pulse.services.http_transport import HttpResponse
from pulse.services.wikipedia import WikipediaContextService, extract_infobox
from pulse.utils.error_monitoring import NoResults, TransientNetworkError

API = "https://wiki.test/w/api.php"

WIKITEXT = """{{Short description|Capital of France}}
{{Infobox settlement
| name = Paris
| country = [[France]]
| mayor = [[Anne Hidalgo]] ([[Socialist Party (France)|PS]])
| population_total = 2,102,650<ref name="pop">{{cite web|url=https://insee.test}}</ref>
| coordinates = {{coord|48|51|N|2|21|E}}
| blank =
}}
'''Paris''' is the capital of France.
"""


def test_extract_infobox():
    facts = extract_infobox(WIKITEXT)
    assert facts["name"] == "Paris"
    assert facts["country"] == "France"
    assert facts["mayor"] == "Anne Hidalgo (Socialist Party (France))"
    assert facts["population_total"] == "2,102,650"
    assert facts["coordinates"] == "{{coord|48|51|N|2|21|E}}"
    assert "blank" not in facts


def test_extract_infobox_without_template():
    assert extract_infobox("Plain article text") == {}
    assert extract_infobox("") == {}


def wiki_api(url, params):
    if params.get("list") == "search":
        hits = [{"title": "Paris"}, {"title": "Paris, Texas"}] if params["srsearch"] == "paris" else []
        return json_response({"query": {"search": hits}})
    if params.get("prop") == "extracts":
        return json_response({"query": {"pages": {"1": {"title": "Paris", "extract": "Paris is the capital."}}}})
    if params.get("prop") == "revisions":
        return json_response({"query": {"pages": {"1": {
            "title": "Paris",
            "revisions": [{"slots": {"main": {"*": WIKITEXT}}}],
        }}}})
    if params.get("prop") == "links":
        return json_response({"query": {"pages": {"1": {"links": [{"title": "Seine"}, {"title": "Louvre"}]}}}})
    return HttpResponse(400, "")


@pytest.mark.asyncio
async def test_lookup_assembles_background():
    service = WikipediaContextService(FakeTransport({API: wiki_api}), api_base=API)

    context = await service.lookup("paris")

    assert context.topic == "Paris"
    assert context.summary == "Paris is the capital."
    assert context.structured_facts["country"] == "France"
    assert context.related_titles == ("Seine", "Louvre")
    assert context.url == "https://en.wikipedia.org/wiki/Paris"
    assert context.source == "wikipedia"


@pytest.mark.asyncio
async def test_lookup_without_page_raises_no_results():
    service = WikipediaContextService(FakeTransport({API: wiki_api}), api_base=API)
    with pytest.raises(NoResults):
        await service.lookup("zzzxqy")


@pytest.mark.asyncio
async def test_secondary_failures_degrade_to_empty_parts():
    def flaky(url, params):
        if params.get("prop") in ("revisions", "links"):
            return HttpResponse(503, "")
        return wiki_api(url, params)

    service = WikipediaContextService(FakeTransport({API: flaky}), api_base=API)

    context = await service.lookup("paris")

    assert context.summary == "Paris is the capital."
    assert context.structured_facts == {}
    assert context.related_titles == ()


@pytest.mark.asyncio
async def test_search_failure_propagates():
    service = WikipediaContextService(FakeTransport({API: HttpResponse(500, "")}), api_base=API)
    with pytest.raises(TransientNetworkError):
        await service.lookup("paris")


@pytest.mark.asyncio
async def test_missing_page_summary_is_empty():
    transport = FakeTransport({API: json_response({"query": {"pages": {"-1": {"missing": ""}}}})})
    service = WikipediaContextService(transport, api_base=API)
    assert await service.summary("Nope") == ""
    assert await service.infobox("Nope") == {}
