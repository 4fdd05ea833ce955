"""toonshelf - ordered-collection reconciliation for a comic reader's admin console."""

__version__ = "0.4.0"
