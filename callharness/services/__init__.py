"""Browser-facing services: polling, page adapter, snapshots, health checks."""
