"""Packaged YAML configuration files."""
