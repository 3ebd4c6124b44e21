"""Infrastructure layer — adapters for Kafka, Docker Compose, HTTP, and config files."""
