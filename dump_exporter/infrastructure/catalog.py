"""HTML listing implementation of the CatalogProvider port."""

import re
from typing import Dict, Iterable, List

import httpx

from ..application.domain import CatalogEntry, CatalogProvider
from ..application.exceptions import CatalogError

from .base_client import BaseClient
from .decorators import retry_on_network_error

_ARCHIVE_HREF = re.compile(r'href="([^"]+\.csv\.gz)"')
_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


def parse_entry(filename: str) -> CatalogEntry:
    """
    Builds a catalog entry from a dump filename.

    Raises:
        ValueError: If the filename carries no ISO date.
    """
    match = _ISO_DATE.search(filename)
    if match is None:
        raise ValueError(f"No date in dump filename {filename!r}")
    return CatalogEntry(
        dataset_type=filename.split("-")[0],
        filename=filename,
        date=match.group(0),
    )


def select_latest(filenames: Iterable[str]) -> List[CatalogEntry]:
    """
    Picks the newest file per dataset type.

    Files without a date are skipped before comparison, so they never win
    even when they would otherwise sort last.
    """
    latest: Dict[str, CatalogEntry] = {}
    for filename in filenames:
        try:
            entry = parse_entry(filename)
        except ValueError:
            continue
        current = latest.get(entry.dataset_type)
        if current is None or entry.date > current.date:
            latest[entry.dataset_type] = entry
    return list(latest.values())


def scan_listing(html: str) -> List[str]:
    """Returns every `*.csv.gz` href in a listing page, in page order."""
    return _ARCHIVE_HREF.findall(html)


class HtmlCatalogProvider(BaseClient, CatalogProvider):
    """A catalog that scrapes the dump directory index page."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        user_agent: str,
        base_url: str,
        timeout: int,
    ):
        """Initializes the catalog adapter."""
        super().__init__(client, user_agent)
        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.timeout = timeout

    def url_for(self, filename: str) -> str:
        return self.base_url + filename

    @retry_on_network_error
    async def _fetch_listing(self) -> str:
        """Executes the raw HTTP GET request for the index page."""
        response = await self.client.get(
            self.base_url, headers=self.headers, timeout=self.timeout
        )
        response.raise_for_status()
        return response.text

    async def latest_entries(self) -> List[CatalogEntry]:
        """
        Fetches the listing and resolves the newest dump per type.

        Returns:
            One entry per dataset type seen in the listing; empty when the
            page has no recognizable dump files.

        Raises:
            CatalogError: If the listing cannot be fetched.
        """

        self.logger.info(f"Getting latest files from {self.base_url}...")

        try:
            html = await self._fetch_listing()
        except httpx.HTTPError as e:
            raise CatalogError(
                f"Failed to fetch dump listing {self.base_url}: {e}"
            ) from e

        entries = select_latest(scan_listing(html))
        self.logger.info(
            f"Found {len(entries)} dataset types: "
            f"{', '.join(entry.filename for entry in entries) or 'none'}"
        )
        return entries
