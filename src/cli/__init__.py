"""CLI tools for the knowledge-base service.

- ``python -m src.cli.ingest`` (or ``python -m src.cli``) -- upload, list,
  delete and search an assistant's documents, and show store statistics.

The CLI builds the same components as the API server (see
``src.main.build_components``) so both see one database.
"""
