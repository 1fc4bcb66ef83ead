"""N-up grid synthesis for backends without native grid output.

Default (``model``) mirrors the production behavior: collect N panel images,
then ask the same image adapter to tile them with the join prompt. The
``pillow`` mode tiles deterministically with a 1px white gap instead.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import io
import logging

from PIL import Image, UnidentifiedImageError

from cinegen.config import get_settings
from cinegen.schemas.generation import ImageOptions, ReferenceAsset
from cinegen.services.errors import BackendRejected
from cinegen.services.prompting import grid_shape, join_images_prompt
from cinegen.services.providers.base import ProviderAdapter
from cinegen.services.reference_assets import (
    AssetForm,
    ReferenceAssetNormalizer,
    parse_data_url,
    to_data_url,
)
from cinegen.services.resolver import ProviderRuntime

logger = logging.getLogger(__name__)

GAP = 1


def parse_size(size: str, default: tuple[int, int] = (2560, 1440)) -> tuple[int, int]:
    width, _, height = size.lower().partition("x")
    try:
        return max(int(width), 1), max(int(height), 1)
    except ValueError:
        return default


def tile_images(images: list[Image.Image], count: int, size: str) -> bytes:
    """Tile ``images`` row-major into a grid of the requested canvas size (PNG bytes)."""
    rows, cols = grid_shape(count)
    width, height = parse_size(size)
    cell_w = max((width - GAP * (cols - 1)) // cols, 1)
    cell_h = max((height - GAP * (rows - 1)) // rows, 1)

    canvas = Image.new("RGB", (width, height), color=(255, 255, 255))
    for index, img in enumerate(images[: rows * cols]):
        row, col = divmod(index, cols)
        cell = img.convert("RGB").resize((cell_w, cell_h))
        canvas.paste(cell, (col * (cell_w + GAP), row * (cell_h + GAP)))

    buffer = io.BytesIO()
    canvas.save(buffer, "PNG")
    return buffer.getvalue()


class GridComposer:
    """Builds one grid image out of N separately generated panels."""

    def __init__(self, normalizer: ReferenceAssetNormalizer, mode: str | None = None):
        self.normalizer = normalizer
        self.mode = mode or get_settings().GRID_COMPOSITOR

    async def collect_panels(
        self,
        adapter: ProviderAdapter,
        runtime: ProviderRuntime,
        grid_prompt: str,
        panel_prompt: str,
        references: list[ReferenceAsset],
        options: ImageOptions,
    ) -> list[str]:
        """First call asks for the whole set; single-panel calls top it up to N."""
        panels = list(await adapter.generate_image(runtime, grid_prompt, references, options))
        single = options.model_copy(update={"count": 1})
        while len(panels) < options.count:
            logger.debug("%s: generating panel %d/%d", adapter.name, len(panels) + 1, options.count)
            panels.extend(await adapter.generate_image(runtime, panel_prompt, references, single))
        return panels[: options.count]

    async def compose(
        self,
        adapter: ProviderAdapter,
        runtime: ProviderRuntime,
        panels: list[str],
        options: ImageOptions,
    ) -> str:
        if len(panels) == 1:
            return panels[0]
        if self.mode == "pillow":
            try:
                return await self._compose_locally(panels, options)
            except BackendRejected as e:
                logger.warning("Local grid compositing failed, asking the model instead: %s", e)
        return await self._compose_with_model(adapter, runtime, panels, options)

    async def _compose_with_model(
        self,
        adapter: ProviderAdapter,
        runtime: ProviderRuntime,
        panels: list[str],
        options: ImageOptions,
    ) -> str:
        refs = [ReferenceAsset(source=panel) for panel in panels]
        refs = await self.normalizer.normalize_all(refs, adapter.reference_form)
        join_options = ImageOptions(style=options.style, size=options.size, count=1)
        results = await adapter.generate_image(
            runtime, join_images_prompt(len(panels), options.size), refs, join_options,
        )
        return results[0]

    async def _compose_locally(self, panels: list[str], options: ImageOptions) -> str:
        images = []
        for panel in panels:
            inline = await self.normalizer.normalize(panel, AssetForm.INLINE)
            parsed = parse_data_url(inline)
            if parsed is None:
                raise BackendRejected("panel could not be fetched for local compositing")
            try:
                images.append(Image.open(io.BytesIO(base64.b64decode(parsed[1]))))
            except (binascii.Error, UnidentifiedImageError) as e:
                raise BackendRejected("panel is not a decodable image") from e

        png = await asyncio.to_thread(tile_images, images, len(panels), options.size)
        return to_data_url(png, "image/png")
