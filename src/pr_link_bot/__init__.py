"""Discord bot that turns bare nixpkgs pull request links into summaries."""

__version__ = "0.1.0"
