"""
Pipeline stages package.

Each stage module follows a consistent pattern:
- Docstring with Input/Output files documented
- Path constants for all file locations
- main() function as the entry point
"""
