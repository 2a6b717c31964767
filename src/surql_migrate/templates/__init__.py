"""Bundled project templates used by ``surql-migrate scaffold``."""
