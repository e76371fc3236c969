"""Color definitions for the experiment UI."""

# Basic colors
WHITE = (255, 255, 255)
BLACK = (0, 0, 0)

# Experiment colors
BACKGROUND = (10, 10, 30)
PROMPT_TEXT = WHITE
HUD_TEXT = (200, 200, 200)
OBJECT_ACTIVE = (100, 200, 120)
OBJECT_INACTIVE = (60, 60, 80)
