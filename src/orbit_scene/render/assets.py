from __future__ import annotations

from collections import OrderedDict
from typing import Iterable

import numpy as np
import pygame


Color = tuple[int, int, int] | tuple[int, int, int, int]


def make_glow_surface(size: int) -> pygame.Surface:
    """White radial falloff on a transparent square, alpha ``(1 - r)^2``."""

    size = max(2, int(size))
    coords = (np.arange(size) + 0.5) / size * 2.0 - 1.0
    gx, gy = np.meshgrid(coords, coords, indexing="ij")
    r = np.sqrt(gx * gx + gy * gy)
    alpha = (np.clip(1.0 - r, 0.0, 1.0) ** 2 * 255).astype(np.uint8)
    surface = pygame.Surface((size, size), pygame.SRCALPHA)
    surface.fill((255, 255, 255, 0))
    pixels = pygame.surfarray.pixels_alpha(surface)
    pixels[:, :] = alpha
    del pixels
    return surface


class AssetLibrary:
    """Cache for frequently accessed render assets."""

    _GLOW_CACHE_MAX = 128

    def __init__(self, glow_size: int = 128) -> None:
        self._glow_size = glow_size
        self._glow_base: pygame.Surface | None = None
        self._glow_cache: OrderedDict[tuple[int, tuple[int, int, int], int], pygame.Surface] = (
            OrderedDict()
        )

    def glow_base(self) -> pygame.Surface:
        if self._glow_base is None:
            self._glow_base = make_glow_surface(self._glow_size)
        return self._glow_base

    def get_glow(
        self, diameter: int, color: tuple[int, int, int], alpha: int
    ) -> pygame.Surface:
        if diameter <= 0:
            raise ValueError("glow diameter must be positive")
        key = (diameter, color, alpha)
        cached = self._glow_cache.get(key)
        if cached is not None:
            self._glow_cache.move_to_end(key)
            return cached
        scaled = pygame.transform.smoothscale(self.glow_base(), (diameter, diameter))
        tinted = scaled.copy()
        tinted.fill((*color, 255), special_flags=pygame.BLEND_RGBA_MULT)
        tinted.set_alpha(alpha)
        self._glow_cache[key] = tinted
        if len(self._glow_cache) > self._GLOW_CACHE_MAX:
            self._glow_cache.popitem(last=False)
        return tinted


_TEXT_SURFACE_CACHE_MAX_SIZE = 256
_TEXT_SURFACE_CACHE: OrderedDict[tuple[int, str, Color], pygame.Surface] = OrderedDict()


def get_text_surface(font: pygame.font.Font, text: str, color: Color) -> pygame.Surface:
    """Return a cached rendered surface for the given font, text and color."""

    key = (id(font), text, color)
    cached = _TEXT_SURFACE_CACHE.get(key)
    if cached is not None:
        _TEXT_SURFACE_CACHE.move_to_end(key)
        return cached
    rendered = font.render(text, True, color)
    _TEXT_SURFACE_CACHE[key] = rendered
    if len(_TEXT_SURFACE_CACHE) > _TEXT_SURFACE_CACHE_MAX_SIZE:
        _TEXT_SURFACE_CACHE.popitem(last=False)
    return rendered


def load_font(preferred_names: Iterable[str], size: int, *, bold: bool = False) -> pygame.font.Font:
    names = list(preferred_names)
    for name in names:
        try:
            match = pygame.font.match_font(name, bold=bold)
        except (OSError, pygame.error):
            match = None
        if match:
            return pygame.font.Font(match, size)
    fallback = names[0] if names else None
    return pygame.font.SysFont(fallback, size, bold=bold)


__all__ = ["AssetLibrary", "Color", "get_text_surface", "load_font", "make_glow_surface"]
