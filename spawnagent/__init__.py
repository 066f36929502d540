"""
spawn-agent — distill the current session into a brief and hand it
to a fresh worker in a new tmux window.
"""

from spawnagent.identity import __codename__, __tagline__, __version__

__all__ = ["__codename__", "__tagline__", "__version__"]
