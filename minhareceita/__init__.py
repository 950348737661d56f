"""Download, check and sample the Brazilian CNPJ open data, build a JSON record per CNPJ and serve the records."""

__version__ = "0.1.0"