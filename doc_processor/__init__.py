"""Preparation stage: copy Drive files into content-addressed Cloud Storage objects."""
