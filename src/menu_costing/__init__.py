"""Menu costing engine: cost cascade from ingredient purchases to menu margins."""

from .utils.constants import APP_VERSION

__version__ = APP_VERSION
