"""
Archiver Errors
Exception hierarchy shared by the extraction pipeline and the run bootstrap

PATTERN RECOGNITION: The hierarchy mirrors the scope at which each failure is
recovered:
- ConnectivityError aborts the whole run
- ExtractionError (and subclasses) aborts one message
- Attachment failures never raise; the saver logs and returns None
"""


class ArchiverError(Exception):
    """Base class for all archiver errors"""


class ConnectivityError(ArchiverError):
    """The mail store could not be reached, authenticated or opened"""


class ExtractionError(ArchiverError):
    """A message's content could not be extracted into a coherent record"""


class RenderError(ExtractionError):
    """A body artifact could not be rendered or written"""


class PeriodDirectoryError(ExtractionError):
    """The period directory for a message could not be created"""
