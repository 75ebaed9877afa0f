"""Exception taxonomy for normaflux.

Every error raised by a pipeline stage derives from `PipelineError`; the
builtin mixins keep `except ValueError` / `except FileNotFoundError` callers
working. Failures of the statistical libraries propagate unchanged.
"""


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class MissingInputError(PipelineError, FileNotFoundError):
    """A required input file could not be found."""


class AmbiguousInputError(PipelineError, ValueError):
    """A file pattern matched more than one file."""


class SchemaMismatchError(PipelineError, ValueError):
    """Design and quantification tables do not fit together."""


class ConfigError(PipelineError, ValueError):
    """Invalid configuration value."""


class PipelineStateError(PipelineError, RuntimeError):
    """The pipeline cannot resume from its persisted state."""
