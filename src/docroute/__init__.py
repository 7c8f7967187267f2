"""docroute - permalink and taxonomy resolution for front-matter documents."""

__version__ = "0.1.0"
