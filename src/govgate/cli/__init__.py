"""Command-line interface: ``govgate serve``, ``govgate config``, ``govgate usage``."""
