"""Domain layer: entities, value objects and service interfaces."""
