"""
Cob Asset Loader

Parses cob scene and asset files, resolves manifests, imports, constants
and macros across files, and caches fully expanded scenes and commands.
"""

__version__ = "0.3.0"


from ._error import *
from . import ast
from .ast import Span
from ._parser import *
from ._extract import *
from ._manifest import *
from ._scope import *
from ._expand import *
from ._scenes import *
from ._buffer import *
from ._cache import *
