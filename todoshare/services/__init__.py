"""Cloud services used by todoshare."""
