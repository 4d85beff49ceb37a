
from .terms import terms

class PxPackagerError (Exception):
    """Super-class for all px_packager errors."""
    pass

class ConfigurationError (PxPackagerError):
    """A required run option or configuration file is missing or unusable."""
    pass

class InvalidDatapackage (PxPackagerError):
    """The input data package fails to validate."""
    pass

class IncompatibleDatapackageModel (PxPackagerError):
    """The input data package model is incompatible with our requirements."""
    pass

class JobProcessingError (PxPackagerError):
    """A single analysis job could not be packaged."""
    outcome = terms.outcome.failed

    def __init__(self, message, job_id=None, dataset=None):
        super(JobProcessingError, self).__init__(message)
        self.job_id = job_id
        self.dataset = dataset

class SourceFileNotFound (JobProcessingError):
    """An expected upstream file for the job does not exist."""
    outcome = terms.outcome.file_not_found

class ConversionError (JobProcessingError):
    """An external converter failed to produce its output file."""
    pass

class RegistryError (JobProcessingError):
    """The file graph registry was used in an inconsistent order."""
    pass

class DatasetOrderError (PxPackagerError):
    """Jobs for one dataset were not presented contiguously."""
    pass

class StagingError (PxPackagerError):
    """Staged files could not be transferred or bagged."""
    pass

class RunAborted (PxPackagerError):
    """Too many jobs failed; the run was abandoned without a manifest."""

    def __init__(self, message, failure_count):
        super(RunAborted, self).__init__(message)
        self.failure_count = failure_count
