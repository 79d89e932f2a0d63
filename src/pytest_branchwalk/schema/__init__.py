"""Structural models of an already-built tree.

Defines the steps and branches produced by an external tree builder and
consumed by the execution engine, together with the serialized tree
document format.
"""

from .branches import Branch
from .documents import TreeDocument, load_document
from .steps import Step, VarAssignment

__all__ = (
    'Branch',
    'Step',
    'TreeDocument',
    'VarAssignment',
    'load_document',
)
