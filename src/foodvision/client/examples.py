"""Static example images offered next to the upload control."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass
from typing import TYPE_CHECKING

import httpx

from foodvision.client.errors import ExampleFetchError
from foodvision.client.payload import DEFAULT_MIME_TYPE, ImageSubmission

if TYPE_CHECKING:
    from foodvision.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExampleAsset:
    """A catalog entry: display name and asset path relative to the assets base URL."""

    name: str
    path: str

    @property
    def extension(self) -> str:
        return self.path.rsplit(".", 1)[-1]


EXAMPLE_ASSETS: dict[str, ExampleAsset] = {
    asset.name: asset
    for asset in (
        ExampleAsset(name="Biryani", path="biryani.jpg"),
        ExampleAsset(name="Masala Dosa", path="masala_dosa.jpg"),
        ExampleAsset(name="Gulab Jamun", path="gulab_jamun.jpg"),
        ExampleAsset(name="Pani Puri", path="pani_puri.jpg"),
        ExampleAsset(name="Hara Bhara Kabab", path="hara_bhara_kabab.jpg"),
        ExampleAsset(name="Falooda", path="falooda.jpg"),
        ExampleAsset(name="Chicken Pizza", path="chicken_pizza.jpg"),
        ExampleAsset(name="Sandwich", path="sandwich.jpg"),
    )
}


class ExampleCatalog:
    """Resolves example names to asset URLs and fetches their bytes.

    Fetching is a plain GET: no multipart body and no fallback attempt.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        assets: dict[str, ExampleAsset] | None = None,
    ) -> None:
        self._client = client
        self._base_url = base_url.rstrip("/")
        self._assets = EXAMPLE_ASSETS if assets is None else assets

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> ExampleCatalog:
        if client is None:
            client = httpx.AsyncClient(timeout=httpx.Timeout(settings.request_timeout))
        return cls(client, settings.assets_base_url)

    def names(self) -> list[str]:
        return list(self._assets)

    def get(self, name: str) -> ExampleAsset:
        try:
            return self._assets[name]
        except KeyError:
            raise KeyError(f"Unknown example: {name}") from None

    def url_for(self, name: str) -> str:
        return f"{self._base_url}/{self.get(name).path}"

    async def fetch(self, name: str) -> ImageSubmission:
        """Download an example and wrap it as a submission named ``<name>.<ext>``.

        Raises:
            KeyError: If ``name`` is not in the catalog.
            ExampleFetchError: If the asset cannot be downloaded.
        """
        asset = self.get(name)
        url = self.url_for(name)
        try:
            response = await self._client.get(url)
        except httpx.TransportError as exc:
            raise ExampleFetchError(name, str(exc) or type(exc).__name__) from exc
        if not response.is_success:
            raise ExampleFetchError(name, f"Failed to load image: {response.status_code}")

        content_type = response.headers.get("content-type", "").split(";", 1)[0].strip()
        if not content_type:
            content_type = mimetypes.guess_type(asset.path)[0] or DEFAULT_MIME_TYPE
        logger.debug("Fetched example %s (%d bytes, %s)", name, len(response.content), content_type)
        return ImageSubmission(
            content=response.content,
            declared_name=f"{asset.name}.{asset.extension}",
            mime_type=content_type,
        )

    async def aclose(self) -> None:
        await self._client.aclose()
