"""Per-file-type decoders: container, configuration and sample data."""
