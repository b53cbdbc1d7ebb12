"""pawnpack: dependency manager and build runner for Pawn packages."""

__version__ = "0.1.0"
