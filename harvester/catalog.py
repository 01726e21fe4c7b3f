"""
Catalog resolution for the CEDA harvester.

Contains the link extractor shared by every stage and the four resolution
steps that walk the MIDAS Open index pages:

    dataset root -> counties -> stations -> qc-version folder -> data files

Each stage fetches one page, applies a CSS selector, and post-filters the raw
href list.  Stages raise FetchError / QCVersionNotFound for the single item
they were given; the orchestrator decides what a failure means for the run.
"""

import logging

from bs4 import BeautifulSoup

from harvester.client import CedaClient
from harvester.errors import QCVersionNotFound

logger = logging.getLogger(__name__)

# ---- Configuration ----

RESULTS_SELECTOR = "#results a"
STATION_TABLE_SELECTOR = "#content-main > div.row > div > table a"

LINK_PREFIX = "/badc"
CHANGE_LOG_SUFFIX = "change_log_station_files"

QC_PREFERRED = "qc-version-1"
QC_FALLBACK = "qc-version-0"


# ---- Link extraction ----

def extract_anchors(document: BeautifulSoup,
                    selector: str) -> list[tuple[str, tuple[str, ...]]]:
    """Return ``(href, text_nodes)`` for every element matching *selector*.

    *text_nodes* holds each non-blank text node inside the element, stripped,
    so ``<a>qc-version-1<span>(new)</span></a>`` gives
    ``("qc-version-1", "(new)")``.  Elements without an href, or with an empty
    one, are skipped.  Order follows the document.
    """
    anchors = []
    for element in document.select(selector):
        href = element.get("href")
        if not href:
            continue
        anchors.append((href, tuple(element.stripped_strings)))
    return anchors


def extract_links(document: BeautifulSoup, selector: str) -> list[str]:
    """Return the href of every element matching *selector*, in document order."""
    return [href for href, _ in extract_anchors(document, selector)]


def select_qc_folder(anchors: list[tuple[str, tuple[str, ...]]], station_link: str,
                     qc_fallback: bool = False) -> str:
    """Pick the quality-controlled data folder out of a station page's links.

    Matching is on the anchor text, not the href.  The first anchor with a
    text node equal to ``qc-version-1`` wins.  With *qc_fallback* set, a
    ``qc-version-0`` folder is accepted when no version 1 folder exists.

    Raises:
        QCVersionNotFound: if no anchor matches.
    """
    wanted = (QC_PREFERRED, QC_FALLBACK) if qc_fallback else (QC_PREFERRED,)
    for marker in wanted:
        for href, texts in anchors:
            if marker in texts:
                if marker != QC_PREFERRED:
                    logger.warning("%s: %s missing, falling back to %s",
                                   station_link, QC_PREFERRED, marker)
                return href
    raise QCVersionNotFound(station_link, wanted)


# ---- Resolution stages ----

def discover_county_links(client: CedaClient,
                          link_prefix: str = LINK_PREFIX) -> list[str]:
    """Scrape the county links from the dataset-version root page.

    Keeps hrefs under *link_prefix* and drops the change-log listing that
    sits alongside the county folders.
    """
    document = client.fetch_document(client.dataset_url)
    links = [
        link for link in extract_links(document, RESULTS_SELECTOR)
        if link.startswith(link_prefix) and not link.endswith(CHANGE_LOG_SUFFIX)
    ]
    logger.info("Found %d county link(s) at %s", len(links), client.dataset_url)
    return links


def discover_station_links(client: CedaClient, county_link: str) -> list[str]:
    """Scrape the station links from a county page."""
    document = client.fetch_document(client.url_for(county_link))
    links = extract_links(document, STATION_TABLE_SELECTOR)
    logger.debug("%s: %d station(s)", county_link, len(links))
    return links


def discover_data_folder_link(client: CedaClient, station_link: str,
                              qc_fallback: bool = False) -> str:
    """Resolve a station page to its qc-version-1 data folder link."""
    document = client.fetch_document(client.url_for(station_link))
    anchors = extract_anchors(document, RESULTS_SELECTOR)
    return select_qc_folder(anchors, station_link, qc_fallback)


def discover_data_file_links(client: CedaClient, folder_link: str) -> list[str]:
    """Scrape every downloadable file link (capability and data) from a folder page."""
    document = client.fetch_document(client.url_for(folder_link))
    links = extract_links(document, RESULTS_SELECTOR)
    logger.debug("%s: %d file(s)", folder_link, len(links))
    return links
