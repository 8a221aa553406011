"""Core value types shared by the document and conversation layers."""

from .ranges import LineRange, TextRange

__all__ = ["LineRange", "TextRange"]
