"""Domain layer - entities, exceptions and pure services."""
