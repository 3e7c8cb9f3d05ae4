"""AST nodes for cob files and the values inside them."""

from ._node import *
from ._value import *
from ._scene import *
from ._section import *
