"""Library App - Utilities Package

Helpers shared by the API and the CLI:
- Input validators (validators.py)
- CLI output formatting (ui_helpers.py)
"""
