"""HTTP client for the remote roast generation service."""

from __future__ import annotations

import logging
from enum import StrEnum
from typing import TYPE_CHECKING, TypeVar

import httpx
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from roastmyface.errors import InvalidResponseError, TransportError

if TYPE_CHECKING:
    from collections.abc import Sequence

    from roastmyface.config import Settings
    from roastmyface.validator import UploadedImage

logger = logging.getLogger(__name__)

ResponseT = TypeVar("ResponseT", bound=BaseModel)


class RoastStyle(StrEnum):
    DEFAULT = "default"
    PIDGIN = "pidgin"
    PATOIS = "patois"

    @property
    def label(self) -> str:
        return _STYLE_LABELS[self]


_STYLE_LABELS: dict[RoastStyle, str] = {
    RoastStyle.DEFAULT: "Default English",
    RoastStyle.PIDGIN: "Nigerian Pidgin",
    RoastStyle.PATOIS: "Jamaican Patois",
}


class ImageRoast(BaseModel):
    """A roast aimed at one image of a multi-image submission."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    image_index: int = Field(alias="imageIndex", ge=0)
    roast: str


class SingleRoastResponse(BaseModel):
    roasts: list[str] = Field(min_length=1)


class MultiRoastResponse(BaseModel):
    roasts: list[ImageRoast] = Field(min_length=1)


class RoastClient:
    """Sends multipart roast requests and validates the JSON replies."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        single_path: str = "/api/roast",
        multi_path: str = "/api/roast/multi",
    ) -> None:
        self._http = http
        self._single_path = single_path
        self._multi_path = multi_path

    @classmethod
    def from_settings(cls, settings: Settings) -> RoastClient:
        http = httpx.AsyncClient(base_url=settings.roast_api_url, timeout=settings.request_timeout)
        return cls(http, settings.single_roast_path, settings.multi_roast_path)

    async def roast_single(self, image: UploadedImage, style: RoastStyle) -> list[str]:
        """Roast one image in the given style. Returns the roasts in service order."""
        response = await self._post(
            self._single_path,
            data={"style": str(style)},
            files=[("image", (image.filename, image.data, image.content_type))],
        )
        return self._parse(response, SingleRoastResponse).roasts

    async def roast_multi(
        self,
        images: Sequence[UploadedImage],
        prompt: str,
        pack_title: str,
        style: RoastStyle = RoastStyle.DEFAULT,
    ) -> list[ImageRoast]:
        """Ask the pack question over several images. Returns per-image roasts."""
        response = await self._post(
            self._multi_path,
            data={"prompt": prompt, "packTitle": pack_title, "style": str(style)},
            files=[("images", (image.filename, image.data, image.content_type)) for image in images],
        )
        return self._parse(response, MultiRoastResponse).roasts

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _post(
        self,
        path: str,
        data: dict[str, str],
        files: list[tuple[str, tuple[str, bytes, str]]],
    ) -> httpx.Response:
        try:
            response = await self._http.post(path, data=data, files=files)
        except httpx.HTTPError as exc:
            logger.warning("Roast request to %s failed: %s", path, exc)
            raise TransportError() from exc

        if not response.is_success:
            logger.warning("Roast service answered %s for %s", response.status_code, path)
            raise TransportError()
        return response

    @staticmethod
    def _parse(response: httpx.Response, model: type[ResponseT]) -> ResponseT:
        try:
            return model.model_validate_json(response.content)
        except ValidationError as exc:
            logger.warning("Unusable roast response: %s", exc.errors(include_url=False))
            raise InvalidResponseError() from exc
