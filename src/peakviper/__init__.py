# src/peakviper/__init__.py
from __future__ import annotations

from importlib import import_module, metadata
from types import ModuleType
from typing import TYPE_CHECKING, Any

__all__ = [
    "__version__",
    # Namespaces
    "core",
    "fitting",
    "utils",
    # Sub-pixel extrema API
    "Method",
    "Polarity",
    "LocationResult",
    "subpixel_location",
    "subpixel_locations",
    "subpixel_extrema",
    "subpixel_maxima",
    "subpixel_minima",
    "find_nonzero",
    "locations_to_dataset",
    "mean_shift",
    "mean_shift_vector",
    "resample_at",
]

# Package version
try:
    __version__ = metadata.version("peakviper")
except metadata.PackageNotFoundError:
    __version__ = "0.0.0"

# --- Lazy proxying ---
# numba compiles on first import of the fitting kernels, so nothing below is
# imported until first access.

_lazy_modules = {
    "core": "peakviper.core",
    "fitting": "peakviper.fitting",
    "utils": "peakviper.utils",
}

_SUBPIXEL = "peakviper.core.image_analysis.subpixel_location"
_MEAN_SHIFT = "peakviper.core.image_analysis.mean_shift"

_lazy_attributes = {
    "Method": _SUBPIXEL,
    "Polarity": _SUBPIXEL,
    "LocationResult": _SUBPIXEL,
    "subpixel_location": _SUBPIXEL,
    "subpixel_locations": _SUBPIXEL,
    "subpixel_extrema": _SUBPIXEL,
    "subpixel_maxima": _SUBPIXEL,
    "subpixel_minima": _SUBPIXEL,
    "find_nonzero": _SUBPIXEL,
    "locations_to_dataset": _SUBPIXEL,
    "mean_shift": _MEAN_SHIFT,
    "mean_shift_vector": _MEAN_SHIFT,
    "resample_at": "peakviper.core.image_analysis.resample_at",
}


def __getattr__(name: str) -> Any:
    target = _lazy_modules.get(name)
    if target is not None:
        mod: ModuleType = import_module(target)
        globals()[name] = mod
        return mod
    target = _lazy_attributes.get(name)
    if target is None:
        raise AttributeError(f"module 'peakviper' has no attribute {name!r}")
    attr = getattr(import_module(target), name)
    globals()[name] = attr
    return attr


def __dir__():
    return sorted(
        list(globals().keys()) + list(_lazy_modules.keys()) + list(_lazy_attributes.keys())
    )


if TYPE_CHECKING:
    # These imports are for type checkers/IDE only (no runtime cost)
    from . import core, fitting, utils
    from .core.image_analysis.mean_shift import mean_shift, mean_shift_vector
    from .core.image_analysis.resample_at import resample_at
    from .core.image_analysis.subpixel_location import (
        LocationResult,
        Method,
        Polarity,
        find_nonzero,
        locations_to_dataset,
        subpixel_extrema,
        subpixel_location,
        subpixel_locations,
        subpixel_maxima,
        subpixel_minima,
    )
