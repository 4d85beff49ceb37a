
"""File graph registry for ProteomeXchange submissions.

Every physical file considered for submission is registered once as a
FileRecord under a synthetic, 1-based file id.  Files which are listed
in the submission also get a ResultFileEntry carrying the ProteomeXchange
file type and the ids of the files it was derived from.

"""

import os
import logging

from .terms import terms
from .exception import RegistryError

logger = logging.getLogger(__name__)

# extensions which are lower-cased in full regardless of source casing
_full_lower_extensions = ('.mzml.gz', '.mzml')

_type_names = {
    terms.px_file_type.Result: 'RESULT',
    terms.px_file_type.ResultSearchId: 'RESULT',
    terms.px_file_type.Raw: 'RAW',
    terms.px_file_type.Search: 'SEARCH',
    terms.px_file_type.Peak: 'PEAK',
}

result_file_types = frozenset({
    terms.px_file_type.Result,
    terms.px_file_type.ResultSearchId,
})

search_file_types = frozenset({
    terms.px_file_type.Search,
    terms.px_file_type.ResultSearchId,
})

def type_name(px_file_type):
    """Return the manifest file type name, e.g. 'RESULT' for ResultSearchId."""
    return _type_names.get(px_file_type, 'OTHER')

def _split_extension(filename):
    lowered = filename.lower()
    for ext in _full_lower_extensions:
        if lowered.endswith(ext):
            return filename[0:-len(ext)], ext
    base, ext = os.path.splitext(filename)
    return base, ext.lower()

def normalize_filename(path, dataset_name):
    """Return the submission name for a file belonging to a dataset.

    :param path: The local file path (only the final component is used)
    :param dataset_name: The canonical dataset name

    A base name that starts with the dataset name in a different case
    gets that prefix rewritten to the dataset's casing.  The .mzML and
    .mzML.gz extensions are lower-cased in full; otherwise only the
    final extension is lower-cased.  Names without an extension are
    returned unchanged.
    """
    filename = os.path.basename(path.replace('\\', '/'))
    base, ext = _split_extension(filename)
    if not ext:
        return filename

    if dataset_name and base.lower().startswith(dataset_name.lower()) and not base.startswith(dataset_name):
        base = dataset_name + base[len(dataset_name):]

    return base + ext

class FileRecord (object):
    """One physical file considered for submission."""

    def __init__(self, file_id, normalized_name, path, length_bytes=0, content_hash='', owning_job=None):
        self.file_id = file_id
        self.normalized_name = normalized_name
        self.path = path
        self.length_bytes = length_bytes
        self.content_hash = content_hash
        # diagnostics only; later jobs of the same dataset may reuse the record
        self.owning_job = owning_job

    def __repr__(self):
        return '<FileRecord %d %s>' % (self.file_id, self.normalized_name)

class ResultFileEntry (object):
    """A FileRecord which is listed in the submission manifest."""

    def __init__(self, file_id, px_file_type, filename, path, job=None):
        self.file_id = file_id
        self.px_file_type = px_file_type
        self.filename = filename
        self.path = path
        self.job = job
        # ordered, duplicate-free
        self.parent_file_ids = []

    @property
    def type_name(self):
        return type_name(self.px_file_type)

    def add_parent(self, parent_id):
        if parent_id not in self.parent_file_ids:
            self.parent_file_ids.append(parent_id)

    def __repr__(self):
        return '<ResultFileEntry %d %s %s parents=%r>' % (self.file_id, self.type_name, self.filename, self.parent_file_ids)

class FileGraphRegistry (object):
    """Registry of submission files and their derived-from edges.

    Names are compared case-insensitively.  The registry lives for one
    submission run and entries are never removed.
    """

    def __init__(self):
        # lower-cased normalized name -> FileRecord
        self._records_by_name = {}
        # file_id -> FileRecord
        self._records = {}
        # file_id -> ResultFileEntry, in registration order
        self._results = {}

    @staticmethod
    def _dataset_name(job):
        return getattr(job, 'dataset_name', None) or ''

    def register_file(self, path, job, content_hash=''):
        """Idempotently register a file, returning its file id.

        :param path: The local file path, which need not exist
        :param job: The JobInfo on whose behalf the file is registered
        :param content_hash: MD5 of the data the file was produced from, if known
        """
        normalized_name = normalize_filename(path, self._dataset_name(job))
        record = self._records_by_name.get(normalized_name.lower())
        if record is not None:
            return record.file_id

        length_bytes = os.path.getsize(path) if os.path.isfile(path) else 0
        record = FileRecord(len(self._records) + 1, normalized_name, path, length_bytes, content_hash, job)
        self._records[record.file_id] = record
        self._records_by_name[normalized_name.lower()] = record
        logger.debug('Registered file %d %s (%d bytes)' % (record.file_id, normalized_name, length_bytes))
        return record.file_id

    def register_result(self, file_id, px_file_type, path, job):
        """Idempotently list a registered file in the submission.

        :param file_id: An id previously returned by register_file()
        :param px_file_type: A terms.px_file_type value
        :param path: The local file path used when the id was registered
        :param job: The JobInfo on whose behalf the file is listed

        Raises RegistryError if file_id is unknown or does not match the
        record registered under the path's normalized name.
        """
        if file_id in self._results:
            return True

        normalized_name = normalize_filename(path, self._dataset_name(job))
        record = self._records_by_name.get(normalized_name.lower())
        if record is None:
            msg = 'File %s not found in the master file list; unable to add result entry' % normalized_name
            logger.error(msg)
            raise RegistryError(msg, getattr(job, 'job_id', None), self._dataset_name(job))
        if record.file_id != file_id:
            msg = 'FileID mismatch for %s' % normalized_name
            logger.error('%s: master file list has %d vs. %d passed to register_result' % (msg, record.file_id, file_id))
            raise RegistryError(msg, getattr(job, 'job_id', None), self._dataset_name(job))

        self._results[file_id] = ResultFileEntry(file_id, px_file_type, record.normalized_name, record.path, job)
        return True

    def add_mapping(self, child_id, parent_id):
        """Record that child_id was derived from parent_id.

        The child must already be listed as a result entry and the
        parent must already be registered as a file.  Repeated calls
        are harmless.
        """
        entry = self._results.get(child_id)
        if entry is None:
            msg = 'File ID %s not found in the result file list; unable to add mapping to parent %s' % (child_id, parent_id)
            logger.error(msg)
            raise RegistryError(msg)
        if parent_id not in self._records:
            msg = 'Parent file ID %s is not a registered file; unable to map it from %s' % (parent_id, child_id)
            logger.error(msg)
            raise RegistryError(msg)
        entry.add_parent(parent_id)
        return True

    def count_by_type(self, px_file_type):
        return len([ entry for entry in self._results.values() if entry.px_file_type == px_file_type ])

    def count_by_types(self, px_file_types):
        return sum([ self.count_by_type(px_file_type) for px_file_type in px_file_types ])

    def result_entries(self):
        """Return ResultFileEntry instances ordered by file id."""
        return [ self._results[file_id] for file_id in sorted(self._results) ]

    def result_entry(self, file_id):
        return self._results.get(file_id)

    def record(self, file_id):
        return self._records.get(file_id)

    def records(self):
        return [ self._records[file_id] for file_id in sorted(self._records) ]

    def __len__(self):
        return len(self._records)
