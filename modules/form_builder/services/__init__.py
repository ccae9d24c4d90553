"""Service layer for the form builder.

Nothing here imports widget code, so the services can be driven from tests
or other modules as well as from the builder and filler windows.
"""

from .filler import FillerSession, FillerStatus
from .sync import ExternalChangeWatcher, FormSynchronizer, load_publication, response_key
from .templates import PREDEFINED_TEMPLATES, TemplateLibrary, load_template

__all__ = [
    "ExternalChangeWatcher",
    "FillerSession",
    "FillerStatus",
    "FormSynchronizer",
    "PREDEFINED_TEMPLATES",
    "TemplateLibrary",
    "load_publication",
    "load_template",
    "response_key",
]
