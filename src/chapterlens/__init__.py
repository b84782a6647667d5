"""Chapter reading assistant: chat relay and markup compiler."""

__version__ = "0.1.0"
