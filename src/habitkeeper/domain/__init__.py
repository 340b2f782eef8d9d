"""Domain layer: store contracts consumed by the engine."""
