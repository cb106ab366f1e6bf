"""In-page and protocol-level telemetry collectors."""
