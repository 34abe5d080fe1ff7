"""Keep Arma 3 server workshop mods in sync with launcher modlists."""

__version__ = "0.1.0"
