"""Domain layer: entities, messages and ports."""
