"""Request strategy chain."""

from .chain import AntiBotChain, build_chain
from .strategies import AntiBotContext, RequestDirective, Strategy

__all__ = ["AntiBotChain", "AntiBotContext", "RequestDirective", "Strategy", "build_chain"]
