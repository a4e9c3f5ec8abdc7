"""
Contracts (data models).

This folder defines the shapes shared by the sync engine and its collaborators:
- catalog.py: Item / Catalog loaded once at startup by a catalog provider
- selection.py: SelectionRecord rows, ChangeEvent push notifications and the
  SelectionStore / Subscription interfaces implemented by src/database/*

Both in-memory and real (Postgres, HTTP) collaborators must use these contracts,
so the engine never has to guess payload formats.
"""
