"""UI module containing presentation sinks and colors."""

from .colors import *
from .presentation import PresentationSink, ConsolePresentation, PygamePresentation
