"""Parsers for the supported shell history formats."""

from whiskerlog.models import SHELL_UNKNOWN

from .base import HistoryParser, ParseResult, ParserRegistry, ParseStats, RawEvent
from .bash import BashParser
from .fish import FishParser
from .zsh import ZshParser

__all__ = [
    "BashParser",
    "FishParser",
    "HistoryParser",
    "ParseResult",
    "ParseStats",
    "ParserRegistry",
    "RawEvent",
    "ZshParser",
]

# Register parsers
ParserRegistry.register(BashParser())
ParserRegistry.register(ZshParser())
ParserRegistry.register(FishParser())
# Files of unknown origin are read one command per line
ParserRegistry.register(BashParser(), SHELL_UNKNOWN)
