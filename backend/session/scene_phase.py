"""
Presentation-layer scene phases.

The viewer reports foreground/background transitions with these values.
The gateway maps them onto lifecycle manager calls:
ACTIVE -> start, BACKGROUND -> stop, INACTIVE -> nothing.
"""
from enum import Enum


class ScenePhase(str, Enum):
    """Visibility phase of the viewer scene."""
    ACTIVE = "active"          # Foreground, interactive
    INACTIVE = "inactive"      # Visible but not receiving input (transient)
    BACKGROUND = "background"  # Not visible
