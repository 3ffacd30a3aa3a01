"""Initial message construction for Agent."""

import base64
from typing import Any

import httpx

from reasonloop.exceptions import ConfigurationError, ImageFetchError
from reasonloop.llm import LLMProvider, Message
from reasonloop.logging import get_logger
from reasonloop.schemas import AgentRequest, Base64Image, UrlImage

log = get_logger(__name__)


class AgentContextMixin:
    """Build the system + user messages a run starts from."""

    @staticmethod
    def _data_uri(data: str, mime_type: str) -> str:
        if data.startswith("data:"):
            return data
        return f"data:{mime_type};base64,{data}"

    async def _fetch_image(self, image: UrlImage) -> str:
        """Download a URL image and return it as a data URI.

        Raises:
            ImageFetchError on transport errors or non-2xx responses
        """
        timeout = self.config.images.fetch_timeout
        try:
            if self._http_client is not None:
                response = await self._http_client.get(image.url, timeout=timeout)
            else:
                async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
                    response = await client.get(image.url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ImageFetchError(image.url, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise ImageFetchError(image.url, str(e) or e.__class__.__name__) from e

        mime_type = response.headers.get("content-type", "").split(";")[0].strip()
        if not mime_type.startswith("image/"):
            mime_type = self.config.images.default_mime_type
        encoded = base64.b64encode(response.content).decode("ascii")
        log.debug("Fetched image", url=image.url, mime_type=mime_type, bytes=len(response.content))
        return self._data_uri(encoded, mime_type)

    async def _image_parts(self, request: AgentRequest) -> list[dict[str, Any]]:
        parts: list[dict[str, Any]] = []
        for image in request.images:
            if isinstance(image, Base64Image):
                url = self._data_uri(image.data, image.mime_type or self.config.images.default_mime_type)
            else:
                url = await self._fetch_image(image)
            parts.append({"type": "image_url", "image_url": {"url": url}})
            if image.description:
                parts.append({"type": "text", "text": f"Image description: {image.description}"})
        return parts

    async def _build_initial_messages(
        self,
        request: AgentRequest,
        provider: LLMProvider,
        system_prompt: str,
    ) -> list[Message]:
        """System prompt first, then the user message (multipart when images are attached)."""
        if request.images and not provider.supports_images:
            raise ConfigurationError(
                f"Model provider {provider.provider or provider.model} does not accept image input"
            )

        user_content: str | list[dict[str, Any]] = request.message
        if request.images:
            user_content = [{"type": "text", "text": request.message}]
            user_content.extend(await self._image_parts(request))
            log.info("Attached images", count=len(request.images))

        return [
            Message(role="system", content=system_prompt),
            Message(role="user", content=user_content),
        ]
