"""pygame painter for the retained scene graph.

The painter is deliberately simple: translucent layers first, then meshes
back to front, then additive sprites, particles, labels and the HUD.
"""
from __future__ import annotations

import math
import random
from typing import Iterator, Sequence

import numpy as np
import pygame

from orbit_scene.core.config import RENDER_CFG, RenderCfg

from .assets import AssetLibrary, Color, get_text_surface, load_font
from .camera import OrbitCamera
from .pools import random_unit_vector
from .scene import FieldGrid, InstancedMesh, Label, Line, Mesh, Node, Points, Scene, Sprite

FONT_NAMES = ("dejavusans", "arial", "helvetica")
_DISC_STEPS = 32
ARROW_NAMES = frozenset({"velocity", "acceleration", "slingshot"})


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


def to_rgb255(color: Sequence[float]) -> tuple[int, int, int]:
    return tuple(int(_clamp(float(c), 0.0, 1.0) * 255) for c in color[:3])  # type: ignore[return-value]


def _visible_nodes(node: Node) -> Iterator[Node]:
    if not node.visible:
        return
    yield node
    for child in node.children:
        yield from _visible_nodes(child)


def _world_rotation(node: Node) -> np.ndarray:
    rotation = node.rotation
    parent = node.parent
    while parent is not None:
        rotation = parent.rotation @ rotation
        parent = parent.parent
    return rotation


def _to_world(node: Node, vertices: np.ndarray) -> np.ndarray:
    rotation = _world_rotation(node)
    return (vertices * node.scale) @ rotation.T + node.world_position()


def generate_starfield(
    num_stars: int, radius: float, *, rng: random.Random | None = None
) -> np.ndarray:
    rng = rng or random.Random()
    return np.array([random_unit_vector(rng) * radius for _ in range(num_stars)]).reshape(-1, 3)


def draw_starfield(
    surface: pygame.Surface,
    stars: np.ndarray,
    camera: OrbitCamera,
    *,
    render_cfg: RenderCfg,
) -> None:
    if not len(stars):
        return
    # Stars sit at a fixed distance around the eye, not the target.
    xy, _, mask = camera.project_many(stars + camera.position)
    color = (220, 228, 240, render_cfg.starfield_alpha)
    width, height = surface.get_size()
    for sx, sy in xy[mask]:
        if 0 <= sx < width and 0 <= sy < height:
            surface.fill(color, (int(sx), int(sy), 1, 1))


def draw_polyline(
    surface: pygame.Surface,
    color: Color,
    points: Sequence[tuple[float, float]],
    width: int = 1,
) -> None:
    if len(points) < 2:
        return
    if width <= 1:
        pygame.draw.aalines(surface, color, False, points)
    else:
        pygame.draw.lines(surface, color, False, points, width)
        pygame.draw.aalines(surface, color, False, points)


def draw_dashed_polyline(
    surface: pygame.Surface,
    color: Color,
    points: Sequence[tuple[float, float]],
    dash: float,
    gap: float,
) -> None:
    """Dashes measured in pixels along the projected path."""

    period = dash + gap
    if len(points) < 2 or period <= 0.0:
        return
    travelled = 0.0
    for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
        seg = math.hypot(x1 - x0, y1 - y0)
        if seg <= 0.0:
            continue
        pos = 0.0
        while pos < seg:
            phase = (travelled + pos) % period
            if phase < dash:
                step = min(dash - phase, seg - pos)
                a = pos / seg
                b = (pos + step) / seg
                pygame.draw.line(
                    surface,
                    color,
                    (x0 + (x1 - x0) * a, y0 + (y1 - y0) * a),
                    (x0 + (x1 - x0) * b, y0 + (y1 - y0) * b),
                )
            else:
                step = min(period - phase, seg - pos)
            pos += step
        travelled += seg


def draw_arrow(
    surface: pygame.Surface,
    start: tuple[float, float],
    end: tuple[float, float],
    color: Color,
    *,
    head_length: float = 8.0,
    head_angle_deg: float = 25.0,
) -> None:
    pygame.draw.line(surface, color, start, end, 2)
    if math.hypot(end[0] - start[0], end[1] - start[1]) < head_length:
        return
    angle = math.atan2(start[1] - end[1], end[0] - start[0])
    head_angle = math.radians(head_angle_deg)
    left = (
        end[0] - head_length * math.cos(angle - head_angle),
        end[1] + head_length * math.sin(angle - head_angle),
    )
    right = (
        end[0] - head_length * math.cos(angle + head_angle),
        end[1] + head_length * math.sin(angle + head_angle),
    )
    pygame.draw.polygon(surface, color, [end, left, right])


def downsample_points(
    points: Sequence[tuple[float, float]], max_points: int
) -> list[tuple[float, float]]:
    if len(points) <= max_points:
        return list(points)
    step = max(1, math.ceil(len(points) / max_points))
    sampled = list(points[::step])
    if sampled[-1] != points[-1]:
        sampled.append(points[-1])
    return sampled


def build_text_panel(
    font: pygame.font.Font,
    lines: Sequence[tuple[str, tuple[int, int, int]]],
    *,
    background_color: Color,
    padding: tuple[int, int] = (14, 14),
) -> pygame.Surface:
    if not lines:
        raise ValueError("lines must not be empty")
    padding_x, padding_y = padding
    line_height = font.get_linesize()
    width = max(font.size(text)[0] for text, _ in lines) + padding_x * 2
    height = line_height * len(lines) + padding_y * 2
    panel_surface = pygame.Surface((width, height), pygame.SRCALPHA)
    pygame.draw.rect(
        panel_surface,
        background_color,
        panel_surface.get_rect(),
        border_radius=12,
    )
    for idx, (text, color) in enumerate(lines):
        if not text:
            continue
        text_surf = get_text_surface(font, text, color)
        panel_surface.blit(text_surf, (padding_x, padding_y + idx * line_height))
    return panel_surface


class ScenePainter:
    """Draws a :class:`Scene` as seen by an :class:`OrbitCamera`."""

    def __init__(
        self,
        render_cfg: RenderCfg = RENDER_CFG,
        assets: AssetLibrary | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._cfg = render_cfg
        self.assets = assets or AssetLibrary(render_cfg.glow_texture_size)
        self.stars = generate_starfield(
            render_cfg.starfield_count, render_cfg.starfield_radius, rng=rng
        )
        self._label_font: pygame.font.Font | None = None
        self._hud_font: pygame.font.Font | None = None

    def _fonts(self) -> tuple[pygame.font.Font, pygame.font.Font]:
        if self._label_font is None or self._hud_font is None:
            if not pygame.font.get_init():
                pygame.font.init()
            self._label_font = load_font(FONT_NAMES, self._cfg.label_font_size)
            self._hud_font = load_font(FONT_NAMES, self._cfg.hud_font_size)
        return self._label_font, self._hud_font

    def paint(
        self,
        surface: pygame.Surface,
        scene: Scene,
        camera: OrbitCamera,
        hud_lines: Sequence[str] = (),
    ) -> None:
        cfg = self._cfg
        surface.fill(cfg.background_color)
        draw_starfield(surface, self.stars, camera, render_cfg=cfg)

        translucent = pygame.Surface(surface.get_size(), pygame.SRCALPHA)
        meshes: list[tuple[float, Mesh]] = []
        sprites: list[Sprite] = []
        labels: list[Label] = []
        lines: list[Line] = []
        batches: list[InstancedMesh] = []
        points: list[Points] = []

        for node in _visible_nodes(scene):
            if isinstance(node, FieldGrid):
                self._draw_field(translucent, node, camera)
            elif isinstance(node, Points):
                points.append(node)
            elif isinstance(node, Line):
                lines.append(node)
            elif isinstance(node, InstancedMesh):
                batches.append(node)
            elif isinstance(node, Mesh):
                projected = camera.project(node.world_position())
                if projected is not None:
                    meshes.append((projected[2], node))
            elif isinstance(node, Sprite):
                sprites.append(node)
            elif isinstance(node, Label):
                labels.append(node)

        for line in lines:
            self._draw_line(surface, translucent, line, camera)
        for _, mesh in sorted(meshes, key=lambda item: item[0], reverse=True):
            if mesh.geometry.shape in ("disc",):
                self._draw_mesh(translucent, mesh, camera)
        surface.blit(translucent, (0, 0))

        for batch in batches:
            self._draw_batch(surface, batch, camera)
        for _, mesh in sorted(meshes, key=lambda item: item[0], reverse=True):
            if mesh.geometry.shape not in ("disc",):
                self._draw_mesh(surface, mesh, camera)
        for sprite in sprites:
            self._draw_sprite(surface, sprite, camera)
        for cloud in points:
            self._draw_points(surface, cloud, camera)

        label_font, hud_font = self._fonts()
        for label in labels:
            pos = camera.world_to_screen(label.world_position())
            if pos is None or not label.text:
                continue
            text = get_text_surface(label_font, label.text, cfg.label_color)
            surface.blit(text, text.get_rect(midbottom=pos))

        if hud_lines:
            panel = build_text_panel(
                hud_font,
                [(text, cfg.hud_text_color) for text in hud_lines],
                background_color=cfg.hud_background_color,
            )
            surface.blit(panel, (12, 12))

    # primitives ---------------------------------------------------------
    def _draw_field(self, layer: pygame.Surface, field: FieldGrid, camera: OrbitCamera) -> None:
        if field.values is None:
            return
        cfg = self._cfg
        res_y, res_x = field.values.shape
        xmin, ymin, xmax, ymax = field.bounds
        xs = np.linspace(xmin, xmax, res_x + 1)
        ys = np.linspace(ymin, ymax, res_y + 1)
        gx, gy = np.meshgrid(xs, ys)
        corners = np.column_stack((gx.ravel(), gy.ravel(), np.full(gx.size, field.plane_z)))
        xy, _, mask = camera.project_many(corners)
        xy = xy.reshape(res_y + 1, res_x + 1, 2)
        mask = mask.reshape(res_y + 1, res_x + 1)
        cold = np.array(cfg.field_cold_color, dtype=float)
        hot = np.array(cfg.field_hot_color, dtype=float)
        for row in range(res_y):
            for col in range(res_x):
                if not (
                    mask[row, col] and mask[row, col + 1] and mask[row + 1, col] and mask[row + 1, col + 1]
                ):
                    continue
                t = float(field.values[row, col])
                color = tuple(int(c) for c in cold + (hot - cold) * t)
                pygame.draw.polygon(
                    layer,
                    (*color, cfg.field_alpha),
                    [
                        xy[row, col],
                        xy[row, col + 1],
                        xy[row + 1, col + 1],
                        xy[row + 1, col],
                    ],
                )

    def _draw_line(
        self,
        surface: pygame.Surface,
        layer: pygame.Surface,
        line: Line,
        camera: OrbitCamera,
    ) -> None:
        vertices = line.vertices()
        if len(vertices) < 2:
            return
        world = _to_world(line, vertices)
        xy, _, mask = camera.project_many(world)
        material = line.material
        alpha = int(_clamp(material.opacity, 0.0, 1.0) * 255)

        if line.geometry.shape == "triangles":
            colors = line.vertex_colors()
            for i in range(0, len(world) - 2, 3):
                if not mask[i : i + 3].all():
                    continue
                pygame.draw.polygon(
                    layer, (*to_rgb255(colors[i]), alpha), [xy[i], xy[i + 1], xy[i + 2]]
                )
            return

        if material.dash is not None:
            visible = [tuple(p) for p, ok in zip(xy, mask) if ok]
            draw_dashed_polyline(
                surface, to_rgb255(material.color), visible, material.dash[0], material.dash[1]
            )
            return

        if material.vertex_colors:
            colors = line.vertex_colors()
            for i in range(len(xy) - 1):
                if mask[i] and mask[i + 1]:
                    pygame.draw.aaline(layer, (*to_rgb255(colors[i]), alpha), xy[i], xy[i + 1])
            return

        if len(xy) == 2 and line.name in ARROW_NAMES:
            if mask.all():
                draw_arrow(surface, tuple(xy[0]), tuple(xy[1]), to_rgb255(material.color))
            return
        visible = downsample_points([tuple(p) for p, ok in zip(xy, mask) if ok], 1_000)
        draw_polyline(layer, (*to_rgb255(material.color), alpha), visible)

    def _draw_mesh(self, surface: pygame.Surface, mesh: Mesh, camera: OrbitCamera) -> None:
        geometry = mesh.geometry
        material = mesh.material
        center = mesh.world_position()
        projected = camera.project(center)
        if projected is None:
            return
        sx, sy, depth = projected
        ppu = camera.pixels_per_unit(depth)
        color = np.clip(material.color + material.emissive * material.emissive_intensity, 0.0, 1.0)
        rgb = to_rgb255(color)
        alpha = int(_clamp(material.opacity, 0.0, 1.0) * 255)
        scale = float(np.max(mesh.scale))

        if geometry.shape == "sphere":
            radius = max(self._cfg.min_pixel_radius, int(geometry.radius * scale * ppu))
            pygame.draw.circle(surface, (*rgb, alpha), (int(sx), int(sy)), radius)
        elif geometry.shape == "ring":
            radius = max(2, int(geometry.radius * scale * ppu))
            width = max(1, int((geometry.radius - geometry.inner_radius) * scale * ppu))
            pygame.draw.circle(surface, (*rgb, alpha), (int(sx), int(sy)), radius, width)
        elif geometry.shape == "disc":
            angles = np.linspace(0.0, 2.0 * math.pi, _DISC_STEPS, endpoint=False)
            local = np.column_stack(
                (np.cos(angles) * geometry.radius, np.zeros_like(angles), np.sin(angles) * geometry.radius)
            )
            xy, _, mask = camera.project_many(_to_world(mesh, local))
            if mask.all():
                pygame.draw.polygon(surface, (*rgb, alpha), [tuple(p) for p in xy])
        elif geometry.shape == "cone":
            rotation = _world_rotation(mesh)
            axis = rotation @ np.array([0.0, 1.0, 0.0])
            half = 0.5 * geometry.height
            tip = camera.project(center + axis * half)
            base = camera.project(center - axis * half)
            if tip is None or base is None:
                return
            dx, dy = tip[0] - base[0], tip[1] - base[1]
            length = math.hypot(dx, dy)
            base_px = max(self._cfg.min_pixel_radius, geometry.radius * ppu)
            if length < 1.0:
                pygame.draw.circle(surface, rgb, (int(sx), int(sy)), int(base_px))
                return
            nx, ny = -dy / length * base_px, dx / length * base_px
            pygame.draw.polygon(
                surface,
                rgb,
                [(tip[0], tip[1]), (base[0] + nx, base[1] + ny), (base[0] - nx, base[1] - ny)],
            )

    def _draw_batch(
        self, surface: pygame.Surface, batch: InstancedMesh, camera: OrbitCamera
    ) -> None:
        if batch.count == 0:
            return
        xy, depth, mask = camera.project_many(batch.offsets[: batch.count])
        for i in np.flatnonzero(mask):
            radius = max(
                self._cfg.min_pixel_radius,
                int(batch.scales[i] * camera.pixels_per_unit(depth[i])),
            )
            pygame.draw.circle(
                surface, to_rgb255(batch.colors[i]), (int(xy[i, 0]), int(xy[i, 1])), radius
            )

    def _draw_sprite(self, surface: pygame.Surface, sprite: Sprite, camera: OrbitCamera) -> None:
        projected = camera.project(sprite.world_position())
        if projected is None:
            return
        sx, sy, depth = projected
        limit = 2 * max(surface.get_size())
        diameter = int(_clamp(float(sprite.scale[0]) * camera.pixels_per_unit(depth), 0, limit))
        alpha = int(_clamp(sprite.material.opacity, 0.0, 1.0) * 255)
        if diameter < 2 or alpha <= 0:
            return
        glow = self.assets.get_glow(diameter, to_rgb255(sprite.material.color), alpha)
        flags = pygame.BLEND_RGB_ADD if sprite.material.additive else 0
        surface.blit(glow, glow.get_rect(center=(int(sx), int(sy))), special_flags=flags)

    def _draw_points(self, surface: pygame.Surface, cloud: Points, camera: OrbitCamera) -> None:
        active = np.flatnonzero(cloud.mask)
        if not len(active):
            return
        xy, _, mask = camera.project_many(cloud.geometry.positions[active])
        for k, slot in enumerate(active):
            if not mask[k]:
                continue
            radius = max(1, int(cloud.sizes[slot] * 0.5))
            pygame.draw.circle(
                surface,
                to_rgb255(cloud.geometry.colors[slot]),
                (int(xy[k, 0]), int(xy[k, 1])),
                radius,
            )


__all__ = [
    "FONT_NAMES",
    "ScenePainter",
    "build_text_panel",
    "downsample_points",
    "draw_arrow",
    "draw_dashed_polyline",
    "draw_polyline",
    "draw_starfield",
    "generate_starfield",
    "to_rgb255",
]
