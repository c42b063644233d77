__version__ = "1.0.0"

from .capture import CapturedPage, PageInfo  # noqa: E402
from .errors import CaptureError, CloneError  # noqa: E402
from .pipeline import CloneResult, clone_page, clone_url  # noqa: E402
from .settings import Settings  # noqa: E402

__all__ = [
    "CaptureError",
    "CapturedPage",
    "CloneError",
    "CloneResult",
    "PageInfo",
    "Settings",
    "clone_page",
    "clone_url",
]
