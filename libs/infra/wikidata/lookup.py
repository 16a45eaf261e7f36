"""Death-date lookup against Wikipedia page props and Wikidata claims."""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any
from urllib import parse, request
from urllib.error import HTTPError, URLError

from libs.core.log_events import log_event

WIKIPEDIA_API = "https://en.wikipedia.org/w/api.php"
WIKIDATA_ENTITY_URL = "https://www.wikidata.org/wiki/Special:EntityData/{item}.json"
DATE_OF_DEATH_CLAIM = "P570"
USER_AGENT = "deathwatch/0.1 (death-check poller)"

_WIKIDATA_TIME = re.compile(r"^[+-]?(\d{1,4})-(\d{2})-(\d{2})T")

logger = logging.getLogger(__name__)


class WikidataDeathDateLookup:
    """Resolve a name to a Wikidata item and read its date-of-death claim.

    Any transport or parsing failure is logged and reported as ``None``.
    """

    def __init__(self, timeout_sec: float = 10.0) -> None:
        self._timeout_sec = timeout_sec

    def lookup_death_date(self, name: str) -> date | None:
        try:
            item = self._fetch_wikibase_item(name)
            if item is None:
                return None
            return self._fetch_death_date(item)
        except (
            HTTPError,
            URLError,
            OSError,
            ValueError,
            AttributeError,
            KeyError,
            TypeError,
            IndexError,
        ) as error:
            log_event(
                logger,
                "reference_lookup_error",
                {"name": name, "error": str(error)},
                level=logging.WARNING,
            )
            return None

    def _fetch_wikibase_item(self, name: str) -> str | None:
        query = parse.urlencode(
            {
                "action": "query",
                "titles": name,
                "prop": "pageprops",
                "format": "json",
            }
        )
        payload = self._get_json(f"{WIKIPEDIA_API}?{query}")
        return extract_wikibase_item(payload)

    def _fetch_death_date(self, item: str) -> date | None:
        payload = self._get_json(WIKIDATA_ENTITY_URL.format(item=item))
        return extract_death_date(payload, item)

    def _get_json(self, url: str) -> dict[str, Any]:
        req = request.Request(
            url=url,
            headers={"Accept": "application/json", "User-Agent": USER_AGENT},
            method="GET",
        )
        with request.urlopen(req, timeout=self._timeout_sec) as response:
            return json.loads(response.read().decode("utf-8"))


def extract_wikibase_item(payload: dict[str, Any]) -> str | None:
    pages = payload.get("query", {}).get("pages", {})
    if not isinstance(pages, dict) or not pages:
        return None
    page = next(iter(pages.values()))
    if not isinstance(page, dict):
        return None
    item = page.get("pageprops", {}).get("wikibase_item")
    return item if isinstance(item, str) and item else None


def extract_death_date(payload: dict[str, Any], item: str) -> date | None:
    entity = payload.get("entities", {}).get(item, {})
    claims = entity.get("claims", {}).get(DATE_OF_DEATH_CLAIM)
    if not isinstance(claims, list) or not claims or not isinstance(claims[0], dict):
        return None
    time_value = (
        claims[0].get("mainsnak", {}).get("datavalue", {}).get("value", {}).get("time")
    )
    if not isinstance(time_value, str):
        return None
    return parse_wikidata_time(time_value)


def parse_wikidata_time(value: str) -> date | None:
    """Parse ``+YYYY-MM-DDT00:00:00Z``; reduced precision uses month/day 1."""
    match = _WIKIDATA_TIME.match(value.strip())
    if match is None:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month or 1, day or 1)
    except ValueError:
        return None
