"""Core package for the lotto-ledger draw history ingester."""

__all__ = [
    "config",
    "models",
    "games",
    "tokens",
    "columns",
    "panes",
    "assembler",
    "tuner",
    "pdf_source",
    "fetcher",
    "html_rows",
    "browser",
    "collector",
    "ledger",
    "pipeline",
    "scheduler",
    "cli",
]
