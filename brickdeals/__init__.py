"""brickdeals: LEGO deal aggregation with a scrape-extract-merge pipeline."""

__version__ = "0.1.0"
