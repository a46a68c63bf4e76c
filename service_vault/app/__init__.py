"""
Vault gateway package for the Transcendence platform.

The only component that talks to the backing secret store. It provisions
the store at startup and exposes a small HTTP API to dependent services:

- app.main: FastAPI service, routes and startup/shutdown hooks.
- app.seeding: wait-for-backend, policy and secret seeding.
- app.gateway: read/write, token issue, health and derived views.
- app.rotation: field rotation keeping one previous value.
- app.policies: ACL policy model and the default policy table.
- app.backend: Vault HTTP and in-memory secret engines.

Import must stay side-effect free; all IO happens in route handlers or
the startup hook.
"""
