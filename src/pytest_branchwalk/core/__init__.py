"""Tree execution engine.

This package drives an already-built tree of branches to completion.

It provides:
- namespaces with indentation-scoped local frames;
- lazy, forward-scanning variable resolution;
- isolated evaluation of embedded code fragments;
- outcome classification and error attribution;
- lifecycle hook execution;
- the run instance execution loop with cooperative pause and resume.

The primary public entry point is `RunInstance`.
"""

from .evaluator import CodeEvaluator
from .hooks import HookRunner
from .instance import RunInstance, RunState
from .outcome import BranchTarget, ErrorTarget, Outcome, StepTarget, classify
from .resolver import VariableResolver
from .scope import ScopeManager

__all__ = (
    'BranchTarget',
    'CodeEvaluator',
    'ErrorTarget',
    'HookRunner',
    'Outcome',
    'RunInstance',
    'RunState',
    'ScopeManager',
    'StepTarget',
    'VariableResolver',
    'classify',
)
