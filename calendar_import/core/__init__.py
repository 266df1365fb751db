"""Settings, logging, correlation ids and the exception hierarchy."""
