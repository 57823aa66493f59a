"""
Pydantic request/response models for the HTTP surface.
"""

from .circuits import *  # noqa: F401,F403
from .common import *  # noqa: F401,F403
from .proofs import *  # noqa: F401,F403
