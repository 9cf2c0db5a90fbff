"""VaultFlow: staged offer-copy generation workflow."""

__version__ = "0.1.0"
