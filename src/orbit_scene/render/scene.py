"""Retained scene graph and graphics-resource bookkeeping.

Nodes carry transforms and references to geometry/material handles.  Every
handle is registered with a :class:`ResourceRegistry` on creation and released
on ``dispose()``, so callers can verify that nothing leaks across frames.
"""
from __future__ import annotations

from collections import Counter
from typing import Iterator, Optional

import numpy as np


class ResourceRegistry:
    """Counts live graphics handles by kind."""

    def __init__(self) -> None:
        self._live: Counter[str] = Counter()
        self.created = 0
        self.released = 0

    def acquire(self, kind: str) -> None:
        self._live[kind] += 1
        self.created += 1

    def release(self, kind: str) -> None:
        if self._live[kind] <= 0:
            raise RuntimeError(f"release of untracked {kind} handle")
        self._live[kind] -= 1
        self.released += 1

    def live(self, kind: Optional[str] = None) -> int:
        if kind is None:
            return sum(self._live.values())
        return self._live[kind]

    def snapshot(self) -> dict[str, int]:
        return {kind: count for kind, count in self._live.items() if count}


class Resource:
    kind = "resource"

    def __init__(self, registry: ResourceRegistry) -> None:
        self._registry = registry
        self.disposed = False
        registry.acquire(self.kind)

    def dispose(self) -> None:
        if self.disposed:
            return
        self.disposed = True
        self._registry.release(self.kind)


class Geometry(Resource):
    kind = "geometry"

    def __init__(
        self,
        registry: ResourceRegistry,
        shape: str,
        *,
        radius: float = 1.0,
        height: float = 0.0,
        inner_radius: float = 0.0,
        segments: int = 16,
        capacity: int = 0,
    ) -> None:
        super().__init__(registry)
        self.shape = shape
        self.radius = float(radius)
        self.height = float(height)
        self.inner_radius = float(inner_radius)
        self.segments = segments
        self.capacity = capacity
        self.positions = np.zeros((capacity, 3), dtype=np.float32)
        self.colors = np.ones((capacity, 3), dtype=np.float32)
        self.draw_count = 0

    @property
    def bounding_radius(self) -> float:
        if self.shape == "cone":
            return max(self.radius, 0.5 * self.height)
        return self.radius

    @classmethod
    def sphere(cls, registry: ResourceRegistry, radius: float, segments: int = 32) -> "Geometry":
        return cls(registry, "sphere", radius=radius, segments=segments)

    @classmethod
    def cone(
        cls, registry: ResourceRegistry, radius: float, height: float, segments: int = 16
    ) -> "Geometry":
        return cls(registry, "cone", radius=radius, height=height, segments=segments)

    @classmethod
    def ring(
        cls, registry: ResourceRegistry, inner_radius: float, radius: float, segments: int = 64
    ) -> "Geometry":
        return cls(registry, "ring", radius=radius, inner_radius=inner_radius, segments=segments)

    @classmethod
    def disc(cls, registry: ResourceRegistry, radius: float = 1.0, segments: int = 64) -> "Geometry":
        return cls(registry, "disc", radius=radius, segments=segments)

    @classmethod
    def buffer(cls, registry: ResourceRegistry, capacity: int, shape: str = "line") -> "Geometry":
        return cls(registry, shape, capacity=capacity)


class Material(Resource):
    kind = "material"

    def __init__(
        self,
        registry: ResourceRegistry,
        color: tuple[float, float, float] = (1.0, 1.0, 1.0),
        *,
        opacity: float = 1.0,
        emissive: tuple[float, float, float] = (0.0, 0.0, 0.0),
        emissive_intensity: float = 0.0,
        roughness: float = 0.7,
        additive: bool = False,
        vertex_colors: bool = False,
        dash: Optional[tuple[float, float]] = None,
    ) -> None:
        super().__init__(registry)
        self.color = np.array(color, dtype=float)
        self.opacity = float(opacity)
        self.emissive = np.array(emissive, dtype=float)
        self.emissive_intensity = float(emissive_intensity)
        self.roughness = float(roughness)
        self.additive = additive
        self.vertex_colors = vertex_colors
        self.dash = dash


class LightHandle(Resource):
    kind = "light"


def rotation_from_y(direction: np.ndarray) -> np.ndarray:
    """Rotation matrix taking the +Y axis onto unit ``direction``."""

    up = np.array([0.0, 1.0, 0.0])
    d = direction / np.linalg.norm(direction)
    axis = np.cross(up, d)
    s = float(np.linalg.norm(axis))
    c = float(np.dot(up, d))
    if s < 1e-12:
        if c > 0.0:
            return np.eye(3)
        return np.diag([1.0, -1.0, -1.0])
    k = axis / s
    kx = np.array([[0.0, -k[2], k[1]], [k[2], 0.0, -k[0]], [-k[1], k[0], 0.0]])
    return np.eye(3) + s * kx + (1.0 - c) * (kx @ kx)


class Node:
    def __init__(self, name: str = "") -> None:
        self.name = name
        self.position = np.zeros(3)
        self.rotation = np.eye(3)
        self.scale = np.ones(3)
        self.visible = True
        self.parent: Optional[Node] = None
        self.children: list[Node] = []

    def add(self, child: "Node") -> None:
        if child.parent is not None:
            child.parent.remove(child)
        child.parent = self
        self.children.append(child)

    def remove(self, child: "Node") -> None:
        if child.parent is self:
            self.children.remove(child)
            child.parent = None

    def traverse(self) -> Iterator["Node"]:
        yield self
        for child in self.children:
            yield from child.traverse()

    def world_position(self) -> np.ndarray:
        if self.parent is None:
            return self.position.copy()
        parent = self.parent
        return parent.world_position() + parent.rotation @ (parent.scale * self.position)

    def is_effectively_visible(self) -> bool:
        node: Optional[Node] = self
        while node is not None:
            if not node.visible:
                return False
            node = node.parent
        return True

    def look_along(self, direction: np.ndarray) -> None:
        self.rotation = rotation_from_y(direction)

    def dispose(self) -> None:
        """Release handles owned by this node and its children."""

        for child in list(self.children):
            child.dispose()


class Group(Node):
    pass


class Mesh(Node):
    def __init__(
        self, geometry: Geometry, material: Material, name: str = "", *, pickable: bool = False
    ) -> None:
        super().__init__(name)
        self.geometry = geometry
        self.material = material
        self.pickable = pickable

    def dispose(self) -> None:
        super().dispose()
        self.geometry.dispose()
        self.material.dispose()


class Sprite(Node):
    def __init__(self, material: Material, name: str = "") -> None:
        super().__init__(name)
        self.material = material

    def dispose(self) -> None:
        super().dispose()
        self.material.dispose()


class PointLight(Node):
    def __init__(
        self,
        registry: ResourceRegistry,
        color: tuple[float, float, float],
        intensity: float,
        distance: float,
    ) -> None:
        super().__init__("light")
        self._handle = LightHandle(registry)
        self.color = np.array(color, dtype=float)
        self.intensity = float(intensity)
        self.distance = float(distance)

    def dispose(self) -> None:
        super().dispose()
        self._handle.dispose()


class Line(Node):
    """Polyline backed by a fixed-capacity vertex buffer."""

    def __init__(self, geometry: Geometry, material: Material, name: str = "") -> None:
        super().__init__(name)
        self.geometry = geometry
        self.material = material

    def set_points(self, points: np.ndarray) -> None:
        count = min(len(points), self.geometry.capacity)
        if count:
            self.geometry.positions[:count] = points[:count]
        self.geometry.draw_count = count

    def vertices(self) -> np.ndarray:
        return self.geometry.positions[: self.geometry.draw_count]

    def vertex_colors(self) -> np.ndarray:
        return self.geometry.colors[: self.geometry.draw_count]

    def dispose(self) -> None:
        super().dispose()
        self.geometry.dispose()
        self.material.dispose()


class Points(Line):
    """Point cloud with per-vertex colour and size."""

    def __init__(self, geometry: Geometry, material: Material, name: str = "") -> None:
        super().__init__(geometry, material, name)
        self.sizes = np.zeros(geometry.capacity, dtype=np.float32)
        self.mask = np.zeros(geometry.capacity, dtype=bool)


class Label(Node):
    def __init__(self, text: str, name: str = "label") -> None:
        super().__init__(name)
        self.text = text


class InstancedMesh(Node):
    """One draw resource rendering many small spheres by per-slot transform."""

    def __init__(self, registry: ResourceRegistry, capacity: int, name: str = "batch") -> None:
        super().__init__(name)
        self.geometry = Geometry.sphere(registry, 1.0, segments=8)
        self.material = Material(registry, vertex_colors=True)
        self.capacity = capacity
        self.offsets = np.zeros((capacity, 3), dtype=float)
        self.scales = np.zeros(capacity, dtype=float)
        self.colors = np.ones((capacity, 3), dtype=np.float32)
        self.count = 0

    def dispose(self) -> None:
        super().dispose()
        self.geometry.dispose()
        self.material.dispose()


class FieldGrid(Node):
    """Scalar heat map sampled on an axis aligned rectangle."""

    def __init__(self, name: str = "field") -> None:
        super().__init__(name)
        self.values: Optional[np.ndarray] = None
        self.bounds = (0.0, 0.0, 0.0, 0.0)
        self.plane_z = 0.0


class Scene(Group):
    def __init__(self, registry: Optional[ResourceRegistry] = None) -> None:
        super().__init__("scene")
        self.registry = registry or ResourceRegistry()

    def count(self) -> int:
        return sum(1 for _ in self.traverse()) - 1


__all__ = [
    "FieldGrid",
    "Geometry",
    "Group",
    "InstancedMesh",
    "Label",
    "Line",
    "Material",
    "Mesh",
    "Node",
    "PointLight",
    "Points",
    "Resource",
    "ResourceRegistry",
    "Scene",
    "Sprite",
    "rotation_from_y",
]
