"""
Shared utilities for the Transcendence vault layer.

This package aggregates the building blocks used by the gateway and by
every service that consumes it:

- config: Service configuration via pydantic-settings
- logging: Structured logging with secret redaction
- metrics: Prometheus metrics helpers
- tracing: OpenTelemetry tracing config
- errors: Canonical error types and responses
- retry: Retry helpers with pluggable backoff
- secret_generator: Passwords, hex keys and salted hashes
- vault_client: Resilient client for the gateway API
- service_config: Per-service configuration snapshots built from the gateway
- test_helpers: Factories and fakes for tests

Do not import from service_* packages into shared/.
"""
