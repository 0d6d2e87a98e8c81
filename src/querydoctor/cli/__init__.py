"""Command-line interface for querydoctor."""
