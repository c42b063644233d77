class CloneError(RuntimeError):
    """The page as a whole could not be cloned."""


class CaptureError(CloneError):
    """The rendered page could not be obtained."""
