from ybuild.common import config
from ybuild.common import dto
from ybuild.common import exceptions
from ybuild.common import utils

__all__ = [
    "config",
    "dto",
    "exceptions",
    "utils",
]
