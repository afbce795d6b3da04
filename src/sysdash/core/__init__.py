"""Terminal-independent state: models, filtering, caching, log engine, focus and the controller."""
