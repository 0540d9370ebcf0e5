"""Live clinical encounter transcription with a reconciled SOAP note."""

__version__ = "0.1.0"
