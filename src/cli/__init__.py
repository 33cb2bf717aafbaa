"""
Terminal entry points.

Modules:
- lingo_cli: typer app behind the ``lingo`` command
"""
