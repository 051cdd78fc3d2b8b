"""Transclusion reference resolution."""

from .arena import ResolutionArena
from .reference_resolver import ReferenceResolver, resolve_references

__all__ = ['ResolutionArena', 'ReferenceResolver', 'resolve_references']
