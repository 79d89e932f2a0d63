"""Test suite for the pytest-branchwalk package.

This package contains unit and integration tests validating the
branch model, variable scoping and resolution, code fragment
evaluation, the execution loop, pytest integration and the
command-line tool.
"""
