"""
Detecting the library's own version.

The version is determined only once when the code is loaded, from the metadata
of the installed distribution. It is used to identify the client in requests
(the ``User-Agent`` header) and in the CLI's ``--version`` output.
"""
from typing import Optional

version: Optional[str] = None

try:
    import importlib.metadata
except ImportError:
    pass
else:
    try:
        name, *_ = __name__.split('.')  # usually "cfkit", unless renamed/forked.
        version = importlib.metadata.version(name)
    except importlib.metadata.PackageNotFoundError:
        pass  # running from a source tree without installation.
