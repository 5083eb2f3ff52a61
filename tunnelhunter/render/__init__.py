"""Rendering of live hosts through the external screenshot tool."""

from .dispatcher import RenderDispatcher, SubprocessRenderer
