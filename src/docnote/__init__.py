"""DocNote: audio upload, chunk reassembly and transcription service."""

from importlib import metadata

try:
    __version__ = metadata.version("docnote")
except metadata.PackageNotFoundError:  # running from a source checkout
    __version__ = "0.0.0"

__all__ = ["__version__"]
