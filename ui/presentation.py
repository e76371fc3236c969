"""Presentation sinks that render prompt text, overlay background and object visibility."""

import logging
from typing import Dict, List, Optional

import pygame

from experiment.constants import WINDOW_WIDTH, WINDOW_HEIGHT
from .colors import (
    BACKGROUND, PROMPT_TEXT, HUD_TEXT, OBJECT_ACTIVE, OBJECT_INACTIVE, BLACK
)

logger = logging.getLogger(__name__)


class PresentationSink:
    """Fire-and-forget rendering interface used by the experiment core."""

    def show_text(self, text: str):
        raise NotImplementedError

    def set_background(self, alpha: float):
        raise NotImplementedError

    def set_object_active(self, name: str, active: bool):
        raise NotImplementedError


class ConsolePresentation(PresentationSink):
    """Writes prompts and visibility changes to the log (headless runs)."""

    def __init__(self):
        self.text = ""
        self.background_alpha = 0.0
        self.objects: Dict[str, bool] = {}

    def show_text(self, text: str):
        if text != self.text and text:
            logger.info("Prompt: %s", text)
        self.text = text

    def set_background(self, alpha: float):
        self.background_alpha = alpha

    def set_object_active(self, name: str, active: bool):
        self.objects[name] = active
        logger.debug("Object %s %s", name, "shown" if active else "hidden")


class PygamePresentation(PresentationSink):
    """Draws the countdown/results popup and object list onto a pygame surface."""

    COUNTDOWN_MAX_CHARS = 3

    def __init__(self, surface: pygame.Surface):
        """
        Initialize the presentation.

        Args:
            surface: Main pygame surface to draw on
        """
        self.surface = surface
        self.fonts = {
            'small': pygame.font.Font(None, 24),
            'medium': pygame.font.Font(None, 36),
            'countdown': pygame.font.Font(None, 144),
        }

        self.text = ""
        self.background_alpha = 0.0
        self.objects: Dict[str, bool] = {}

    def show_text(self, text: str):
        self.text = text

    def set_background(self, alpha: float):
        self.background_alpha = max(0.0, min(1.0, alpha))

    def set_object_active(self, name: str, active: bool):
        self.objects[name] = active

    def draw(self, hud_lines: Optional[List[str]] = None):
        """Render the current frame."""
        self.surface.fill(BACKGROUND)
        self._draw_objects()
        self._draw_popup()
        if hud_lines:
            self._draw_hud(hud_lines)

    def _draw_objects(self):
        """Draw one tile per scene object, dimmed when hidden."""
        if not self.objects:
            return
        tile_width = WINDOW_WIDTH // max(1, len(self.objects))
        for i, (name, active) in enumerate(self.objects.items()):
            rect = pygame.Rect(i * tile_width + 10, 20, tile_width - 20, 50)
            pygame.draw.rect(self.surface, OBJECT_ACTIVE if active else OBJECT_INACTIVE, rect,
                             border_radius=8)
            label = self.fonts['small'].render(name, True, BLACK)
            self.surface.blit(label, label.get_rect(center=rect.center))

    def _draw_popup(self):
        """Draw the popup text over a translucent background."""
        if not self.text:
            return

        lines = self.text.split("\n")
        is_countdown = len(self.text) <= self.COUNTDOWN_MAX_CHARS
        font = self.fonts['countdown'] if is_countdown else self.fonts['medium']
        rendered = [font.render(line, True, PROMPT_TEXT) for line in lines]

        width = max(r.get_width() for r in rendered) + 60
        height = sum(r.get_height() for r in rendered) + 40
        x = (WINDOW_WIDTH - width) // 2
        y = (WINDOW_HEIGHT - height) // 2

        if self.background_alpha > 0:
            overlay = pygame.Surface((width, height), pygame.SRCALPHA)
            overlay.fill((0, 0, 0, int(255 * self.background_alpha)))
            self.surface.blit(overlay, (x, y))

        line_y = y + 20
        for surface in rendered:
            self.surface.blit(surface, (WINDOW_WIDTH // 2 - surface.get_width() // 2, line_y))
            line_y += surface.get_height()

    def _draw_hud(self, hud_lines: List[str]):
        y = WINDOW_HEIGHT - 30 * len(hud_lines) - 10
        for line in hud_lines:
            text = self.fonts['small'].render(line, True, HUD_TEXT)
            self.surface.blit(text, (20, y))
            y += 30
