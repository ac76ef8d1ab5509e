"""Domain model for the territory conquest engine.

This package holds every conquest rule in one place and runs purely
in-memory. It exposes:

* Dataclasses describing paths, territories and invasions (see :mod:`models`).
* Enumerations and strongly-typed identifiers used across the rules layer.
* Rule configuration objects (see :mod:`rules_config`).
* Pure rule functions: path sanitizing, polygon building, overlap resolution.

Persistence happens through a thin repository adapter, never from here.
"""

from . import (
    enums,
    errors,
    event_mode,
    geometry,
    models,
    overlap,
    polygon,
    rules_config,
    sanitizer,
    spatial_index,
)

__all__ = [
    "enums",
    "errors",
    "event_mode",
    "geometry",
    "models",
    "overlap",
    "polygon",
    "rules_config",
    "sanitizer",
    "spatial_index",
]
