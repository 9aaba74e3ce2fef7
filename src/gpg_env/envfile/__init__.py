"""Env file model, codec and shell export."""

from .codec import LineKind, classify_line, format_comment, parse, serialize
from .export import export_line, is_exportable, project
from .models import Comment, Entry, Variable, find_variable, variables

__all__ = [
    # Model
    "Comment",
    "Variable",
    "Entry",
    "find_variable",
    "variables",
    # Codec
    "LineKind",
    "classify_line",
    "format_comment",
    "parse",
    "serialize",
    # Export
    "export_line",
    "is_exportable",
    "project",
]
