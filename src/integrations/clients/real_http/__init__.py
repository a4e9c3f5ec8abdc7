"""
Real HTTP integration clients.

These clients communicate with real external systems via HTTP, e.g.:
- the static catalog file served next to the web front end (/recipes.json)

Important:
- Must implement the same interfaces as the local clients
- Must return data shaped according to src/integrations/contracts/*

Switching:
The selection of local vs real clients happens in src/api/dependencies.py only.
"""
