"""Command-line tools for mediabridge.

- ``python -m mediabridge.cli`` (or the ``mediabridge`` console script):
  resolve ids, inspect franchise seasons, and maintain the static mapping
  table and the long-term id cache.

The CLI builds the same :class:`~mediabridge.main.Components` bundle a
long-running service would, runs one command, and closes it again.
"""
