"""User interface: display window and HUD rendering."""

from fieldkit.ui.display import DisplayWindow, KeyAction
from fieldkit.ui.hud import HUDRenderer

__all__ = ["DisplayWindow", "HUDRenderer", "KeyAction"]
