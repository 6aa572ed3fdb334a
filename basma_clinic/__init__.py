"""Basma clinic records: patients, therapy sessions and bilingual category values."""

__version__ = "1.0.0"
