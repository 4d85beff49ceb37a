
"""Job-to-file classification.

For each analysis job the classifier decides which raw, peak-list,
search-result and legacy result files exist, registers them in the
FileGraphRegistry and links derived files to their sources.  Jobs must
arrive grouped by dataset; see sort_jobs() and DatasetCursor.

"""

import os
import ntpath
import logging
from collections import namedtuple

from deriva.core.utils.hash_utils import compute_file_hashes

from .terms import terms
from .exception import JobProcessingError, SourceFileNotFound, ConversionError, DatasetOrderError
from .filegraph import normalize_filename

logger = logging.getLogger(__name__)

DOT_MGF = '.mgf'
DOT_MZML_GZ = '.mzML.gz'
DOT_RAW = '.raw'
CDTA_SUFFIX = '_dta.txt'

ToolSortRule = namedtuple('ToolSortRule', ['test', 'rank'])

def _tool_prefix(prefix):
    def test(tool_name):
        return tool_name.lower().startswith(prefix)
    return test

# MS-GF+ jobs first so the peak-list pairing they establish is reused by later jobs
TOOL_SORT_RULES = [
    ToolSortRule(_tool_prefix('msgfplus'), 0),
    ToolSortRule(_tool_prefix('xtandem'), 1),
]
DEFAULT_TOOL_RANK = 5

def tool_sort_rank(tool_name, rules=TOOL_SORT_RULES):
    for rule in rules:
        if rule.test(tool_name or ''):
            return rule.rank
    return DEFAULT_TOOL_RANK

def sort_jobs(jobs):
    """Return jobs ordered by dataset name, tool rank, then job id."""
    return sorted(jobs, key=lambda job: (job.dataset_name, tool_sort_rank(job.tool_name), job.job_id))

# memo key for peak lists produced at most once per dataset
PeakListKey = namedtuple('PeakListKey', ['dataset_name', 'source_format'])

# memo value; path is None when conversion failed, identity is None when the source is unknown
PeakListSource = namedtuple('PeakListSource', ['path', 'job', 'identity'])

SourceIdentity = namedtuple('SourceIdentity', ['length_bytes', 'md5'])

def source_identity(path):
    """Return SourceIdentity for an existing local file, or None if path is unknown or absent."""
    if not path or not os.path.isfile(path):
        return None
    return SourceIdentity(os.path.getsize(path), compute_file_hashes(path, hashes=['md5'])['md5'][0])

class DatasetCursor (object):
    """Track which dataset is being accumulated.

    States are Idle (dataset_name is None) and Accumulating(dataset_name).
    Moving to a different dataset calls on_flush() first.  A dataset
    which was already finished may not reappear.
    """

    def __init__(self, on_flush):
        self.on_flush = on_flush
        self.dataset_name = None
        self.finished = set()

    @property
    def idle(self):
        return self.dataset_name is None

    def on_new_dataset(self, dataset_name):
        """Enter dataset_name, flushing the previous dataset.  Returns True on a transition."""
        if dataset_name == self.dataset_name:
            return False
        if dataset_name in self.finished:
            raise DatasetOrderError('Jobs for dataset %s were not processed contiguously' % dataset_name)
        if not self.idle:
            self.on_flush()
            self.finished.add(self.dataset_name)
        self.dataset_name = dataset_name
        return True

    def finish(self):
        """Flush the current dataset (if any) and return to Idle."""
        if not self.idle:
            self.on_flush()
            self.finished.add(self.dataset_name)
            self.dataset_name = None

def _join(directory, filename):
    if '\\' in directory:
        return ntpath.join(directory, filename)
    return os.path.join(directory, filename)

class JobClassifier (object):
    """Classifies the files of each job into the file graph."""

    def __init__(self, registry, samples, accumulators, staging, options,
                 peak_list_provider, search_result_provider, legacy_result_provider=None,
                 raw_file_paths=None, datasets=None, template_params=None, work_directory='.'):
        """Construct classifier.

        :param registry: The run's FileGraphRegistry
        :param samples: The run's SampleMetadataAccumulator
        :param accumulators: The run's SubmissionAccumulators
        :param staging: The run's StagingArea
        :param options: RunOptions
        :param peak_list_provider: PeakListProvider used for peak-list conversion
        :param search_result_provider: SearchResultProvider used to locate search results
        :param legacy_result_provider: LegacyResultProvider, only needed for legacy result files
        :param raw_file_paths: Dict of dataset name -> raw instrument file path
        :param datasets: Dict of dataset id -> DatasetInfo
        :param template_params: Template parameter dict
        :param work_directory: Local directory holding files produced for the run
        """
        self.registry = registry
        self.samples = samples
        self.accumulators = accumulators
        self.staging = staging
        self.options = options
        self.peak_list_provider = peak_list_provider
        self.search_result_provider = search_result_provider
        self.legacy_result_provider = legacy_result_provider
        self.raw_file_paths = raw_file_paths or {}
        self.datasets = datasets or {}
        self.template_params = template_params or {}
        self.work_directory = work_directory
        self.peak_lists = {}
        self.cursor = DatasetCursor(staging.flush)

    def _reuse_peak_list(self, job, previous):
        """Return the memoized peak-list path for job, checking that job used the same source data."""
        dataset = job.dataset_name
        if previous.path is None:
            raise ConversionError('Peak list conversion already failed for dataset %s (job %s); skipping job %s' % (
                dataset, previous.job.job_id, job.job_id), job.job_id, dataset)
        if not job.is_msgfplus and not previous.job.is_msgfplus and previous.identity is not None:
            identity = source_identity(self.peak_list_provider.peak_source(job))
            if identity is not None and identity != previous.identity:
                msg = 'Dataset %s has multiple jobs in this data package, and those jobs used different peak-list source files' % dataset
                if identity.length_bytes != previous.identity.length_bytes:
                    logger.error('%s: file size mismatch of %d for job %s vs. %d for job %s' % (
                        msg, identity.length_bytes, job.job_id, previous.identity.length_bytes, previous.job.job_id))
                else:
                    logger.error('%s: MD5 mismatch for job %s vs. job %s' % (msg, job.job_id, previous.job.job_id))
                raise ConversionError(msg, job.job_id, dataset)
        logger.debug('Reusing peak list %s for job %s' % (previous.path, job.job_id))
        return previous.path

    def _peak_list_path(self, job):
        """Return the peak-list path for job, or None if there is no peak entry."""
        dataset = job.dataset_name
        if self.options.create_mgf_files and not job.searched_mzml:
            key = PeakListKey(dataset, DOT_MGF)
            if key in self.peak_lists:
                return self._reuse_peak_list(job, self.peak_lists[key])
            identity = source_identity(self.peak_list_provider.peak_source(job))
            if self.staging.exists_remotely(dataset + DOT_MGF):
                # only the name matters for a file already transferred
                path = os.path.join(self.work_directory, dataset + DOT_MGF)
            else:
                path = self.peak_list_provider.convert(job)
                if not path:
                    self.peak_lists[key] = PeakListSource(None, job, identity)
                    raise ConversionError('Unable to create peak list for job %s, dataset %s' % (job.job_id, dataset), job.job_id, dataset)
            self.peak_lists[key] = PeakListSource(path, job, identity)
            return path

        if job.searched_mzml:
            return os.path.join(self.work_directory, dataset + DOT_MZML_GZ)

        path = os.path.join(self.work_directory, dataset + CDTA_SUFFIX)
        if not self.options.assume_instrument_data_unpurged and not os.path.isfile(path):
            return None
        return path

    def _search_results(self, job):
        if not self.options.include_mzid_files:
            return []
        results = self.search_result_provider.locate(job) or []
        if job.is_msgfplus and not results:
            raise SourceFileNotFound('Search results not found for job %s, dataset %s' % (job.job_id, job.dataset_name), job.job_id, job.dataset_name)
        return results

    def _legacy_result_path(self, job):
        if not self.options.create_legacy_result_files:
            return None
        path = self.legacy_result_provider.convert(job)
        if not path:
            raise ConversionError('Unable to create legacy result file for job %s, dataset %s' % (job.job_id, job.dataset_name), job.job_id, job.dataset_name)
        return path

    def _peak_source_md5(self, job):
        if not self.options.create_mgf_files or job.searched_mzml:
            return ''
        previous = self.peak_lists.get(PeakListKey(job.dataset_name, DOT_MGF))
        if previous is None or previous.identity is None:
            return ''
        return previous.identity.md5

    def _register(self, path, px_file_type, job, stage=True, content_hash=''):
        if stage:
            self.staging.stage(path)
        file_id = self.registry.register_file(path, job, content_hash)
        self.registry.register_result(file_id, px_file_type, path, job)
        return file_id

    def _store_samples(self, job, search_results):
        dataset_info = self.datasets.get(job.dataset_id)
        if dataset_info is not None and not dataset_info.tissue_id.strip():
            dataset_info = None
        sample = self.samples.build_for_job(job, dataset_info, self.template_params)
        for result in search_results:
            for cv_info in result.modifications:
                self.samples.record_modification(sample, cv_info.accession, cv_info)
            self.samples.store(normalize_filename(result.path, job.dataset_name), sample)

    def process_job(self, job):
        """Classify the files of one job.

        Raises a JobProcessingError subclass if the job cannot be
        packaged; DatasetOrderError if jobs are not grouped by dataset.
        """
        self.cursor.on_new_dataset(job.dataset_name)

        self.accumulators.add_search_tool(job.tool_name)
        dataset_info = self.datasets.get(job.dataset_id)
        if dataset_info is not None:
            self.accumulators.add_tissue(dataset_info.tissue_id, dataset_info.tissue_name)
        self.accumulators.add_species(job.organism_id, job.organism_name)

        try:
            peak_path = self._peak_list_path(job)
            search_results = self._search_results(job)
            legacy_path = self._legacy_result_path(job)
        except OSError as e:
            raise JobProcessingError('Error retrieving files for job %s, dataset %s: %s' % (job.job_id, job.dataset_name, e), job.job_id, job.dataset_name) from e

        self.accumulators.store_instrument(job.instrument_group, job.instrument_name)
        if search_results:
            self._store_samples(job, search_results)

        legacy_id = None
        if legacy_path:
            legacy_id = self._register(legacy_path, terms.px_file_type.Result, job)

        raw_id = None
        raw_path = self.raw_file_paths.get(job.dataset_name)
        if raw_path:
            raw_id = self._register(raw_path, terms.px_file_type.Raw, job, stage=False)

        peak_id = None
        if peak_path:
            peak_id = self._register(peak_path, terms.px_file_type.Peak, job, content_hash=self._peak_source_md5(job))

        search_type = terms.px_file_type.ResultSearchId if job.is_msgfplus else terms.px_file_type.Search
        search_ids = [ self._register(result.path, search_type, job) for result in search_results ]

        self._map_edges(legacy_id, raw_id, peak_id, search_ids)
        logger.debug('Job %s: legacy=%s raw=%s peak=%s search=%s' % (job.job_id, legacy_id, raw_id, peak_id, search_ids))

    def _map_edges(self, legacy_id, raw_id, peak_id, search_ids):
        mapping = self.registry.add_mapping
        if legacy_id is not None:
            if peak_id is not None:
                mapping(legacy_id, peak_id)
            for search_id in search_ids:
                mapping(legacy_id, search_id)
            if raw_id is not None and (peak_id is None or not search_ids):
                mapping(legacy_id, raw_id)
        else:
            if peak_id is not None and raw_id is not None and not search_ids:
                mapping(peak_id, raw_id)
            for search_id in search_ids:
                if peak_id is not None:
                    mapping(search_id, peak_id)
                if raw_id is not None:
                    mapping(search_id, raw_id)

    def finish(self):
        """Flush the staged files of the last dataset."""
        self.cursor.finish()

    def add_placeholder(self, dataset_info):
        """List a dataset without jobs as a parentless Raw entry."""
        self.accumulators.add_tissue(dataset_info.tissue_id, dataset_info.tissue_name)
        self.accumulators.add_species(dataset_info.organism_id, dataset_info.organism_name)
        self.accumulators.store_instrument(dataset_info.instrument_group, dataset_info.instrument_name)

        raw_path = _join(dataset_info.dataset_directory, dataset_info.dataset_name + DOT_RAW)
        job = dataset_info.placeholder_job()
        return self._register(raw_path, terms.px_file_type.Raw, job, stage=False)

    def add_placeholders(self, datasets, processed_dataset_ids):
        """Add placeholder entries for every dataset not covered by a processed job.

        Returns the list of placeholder file ids.
        """
        file_ids = []
        for dataset_id, dataset_info in datasets.items():
            if dataset_id in processed_dataset_ids:
                continue
            logger.info('Adding dataset %s (no associated PeptideHit job)' % dataset_info.dataset_name)
            file_ids.append(self.add_placeholder(dataset_info))
        return file_ids
