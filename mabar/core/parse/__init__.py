"""Parse (Back4App) REST backend."""

from mabar.core.parse.client import ParseClient, ParseError
from mabar.core.parse.query import ParseQuery

__all__ = ["ParseClient", "ParseError", "ParseQuery"]
