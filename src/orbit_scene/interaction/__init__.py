"""Pointer interaction for the orbit scene."""

from .controller import (
    CommandSink,
    CreateBodyCommand,
    InteractionController,
    InteractionMode,
    PointerEvent,
    PredictTrajectoryCommand,
    SetThrustCommand,
    SetVelocityCommand,
)

__all__ = [
    "CommandSink",
    "CreateBodyCommand",
    "InteractionController",
    "InteractionMode",
    "PointerEvent",
    "PredictTrajectoryCommand",
    "SetThrustCommand",
    "SetVelocityCommand",
]
