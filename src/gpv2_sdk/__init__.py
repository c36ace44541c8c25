"""Off-chain order signing and settlement encoding for Gnosis Protocol v2."""

from .settlement import *  # noqa: F401,F403
from .settlement import __all__

__version__ = "0.1.0"
