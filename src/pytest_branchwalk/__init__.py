"""Execution engine and pytest plugin for branching test specifications.

The `pytest_branchwalk` package drives an already-built tree of test
branches to completion. A branch is one linear path through a scenario,
made of indented steps that may declare variables, embed Python code
fragments, or mark breakpoints.

Key features:
- a scheduler loop pulling branches and steps from a tree source;
- persistent, global and indentation-scoped local variables with lazy,
  forward-scanning resolution;
- pass, fail and expected-fail outcome classification;
- lifecycle hooks around steps and branches;
- cooperative pause and resume for interactive debugging;
- pytest collection of serialized tree documents.
"""
