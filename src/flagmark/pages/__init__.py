"""NiceGUI pages for flagmark.

Import this module to register all page routes with NiceGUI.
"""

from flagmark.pages import document

__all__ = ["document"]

# These imports register @ui.page decorators as a side effect.
_PAGES = (document,)
