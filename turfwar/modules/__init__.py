"""Domain modules: `shared` building blocks and the `gang` economy."""
