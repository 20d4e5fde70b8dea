"""Settings, logging, error types and locking shared by the order engine."""
