"""
Local integration clients.

These clients serve data from the local filesystem without calling any external API.
They are used when:
- the catalog is shipped next to the service (data/recipes.json)
- we want to run the sync engine end-to-end without network dependencies

Important:
- Local clients must follow the SAME interface as real HTTP clients.
- Local clients should return data shaped according to src/integrations/contracts/*

Switching to real:
Set ``catalog.source: http`` in config/sync_config.yml to use clients/real_http/*
implementations instead.
"""
