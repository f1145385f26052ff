"""A small client for the Tabular Data Stream (TDS) protocol: frames, token decoding, connection and command line."""

__version__ = "0.1.0"