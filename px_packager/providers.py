
"""Collaborators supplying peak-list and search-result files to the classifier.

The classifier only observes whether a file now exists locally.  The
directory-backed providers here find files already produced by upstream
analysis jobs in each job's results directory and copy them into the
work directory.

"""

import os
import shutil
import logging
from collections import namedtuple, Counter

logger = logging.getLogger(__name__)

DOT_MGF = '.mgf'
DOT_MZID_GZ = '.mzid.gz'
DOT_PEPXML_GZ = '.pepXML.gz'
CDTA_SUFFIX = '_dta.txt'

SearchResult = namedtuple('SearchResult', ['path', 'modifications'])
SearchResult.__new__.__defaults__ = ((),)

class PeakListProvider (object):
    """Produces a peak-list file for a job's dataset."""

    def convert(self, job):
        """Return the local path of the peak-list file for job, or None on failure."""
        raise NotImplementedError()

    def peak_source(self, job):
        """Return the local path of the data job's peak list is converted from, or None if unknown.

        Jobs of one dataset which report different source content may
        not share a peak list.
        """
        return None

class LegacyResultProvider (object):
    """Produces a legacy aggregate XML result file for a job."""

    def convert(self, job):
        """Return the local path of the legacy result file for job, or None on failure."""
        raise NotImplementedError()

class SearchResultProvider (object):
    """Locates (and prepares) the search-result files for a job."""

    def locate(self, job):
        """Return a list of SearchResult, one per search shard, or an empty list if absent."""
        raise NotImplementedError()

def _find_file(directories, filename):
    for directory in directories:
        if directory and os.path.isfile(os.path.join(directory, filename)):
            return os.path.join(directory, filename)
    return None

def _copy_into(source, work_directory, filename):
    target = os.path.join(work_directory, filename)
    if os.path.abspath(source) == os.path.abspath(target):
        return target
    if os.path.abspath(os.path.dirname(source)) == os.path.abspath(work_directory):
        # already local, so rename rather than duplicate
        os.replace(source, target)
    else:
        shutil.copy2(source, target)
    logger.debug('Placed "%s" at "%s"' % (source, target))
    return target

class DirectoryPeakListProvider (PeakListProvider):
    """Copies an existing <dataset>.mgf from the job's results directory."""

    def __init__(self, work_directory):
        self.work_directory = work_directory

    def convert(self, job):
        filename = job.dataset_name + DOT_MGF
        source = _find_file([self.work_directory, job.results_directory], filename)
        if source is None:
            logger.error('Peak list %s not found for job %s' % (filename, job.job_id))
            return None
        return _copy_into(source, self.work_directory, filename)

    def peak_source(self, job):
        return _find_file([job.results_directory], job.dataset_name + CDTA_SUFFIX)

class DirectorySearchResultProvider (SearchResultProvider):
    """Locates .mzid.gz (MS-GF+) or .pepXML.gz search results in job results directories.

    When the data package has several jobs for one dataset the copies
    are named <dataset>_Job<job>_msgfplus... or <dataset>_Job<job>_xt...
    to keep them distinct.  Each job's results directory is searched
    before the shared work directory.  A result which is no longer local
    but already sits in the transfer directory is reported under its
    work-directory path.
    """

    def __init__(self, work_directory, jobs=(), staging=None):
        """Construct provider.

        :param work_directory: Local directory receiving the copies
        :param jobs: All JobInfo of the data package, used to detect datasets with several jobs
        :param staging: Optional StagingArea consulted for files already transferred
        """
        self.work_directory = work_directory
        self.staging = staging
        self._jobs_per_dataset = Counter([ job.dataset_name for job in jobs ])

    def rename_required(self, job):
        return self._jobs_per_dataset[job.dataset_name] > 1

    def _target_name(self, job, suffix):
        if self.rename_required(job):
            return '%s_Job%s%s' % (job.dataset_name, job.job_id, suffix)
        return job.dataset_name + suffix

    def _find_source(self, job, filename):
        return _find_file([job.results_directory, self.work_directory], filename)

    def _locate_mzid(self, job, part):
        part_text = '_Part%d' % part if part > 0 else ''
        candidates = [
            'Job%s_%s_msgfplus%s%s' % (job.job_id, job.dataset_name, part_text, DOT_MZID_GZ),
            '%s_msgfplus%s%s' % (job.dataset_name, part_text, DOT_MZID_GZ),
        ]
        target_name = self._target_name(job, '_msgfplus%s%s' % (part_text, DOT_MZID_GZ))
        for filename in candidates:
            source = self._find_source(job, filename)
            if source is not None:
                return SearchResult(_copy_into(source, self.work_directory, target_name), ())
        for filename in candidates + [target_name]:
            if self.staging is not None and self.staging.exists_remotely(filename):
                logger.debug('Search result %s already in the transfer directory' % filename)
                return SearchResult(os.path.join(self.work_directory, filename), ())
        logger.error('mzid.gz file not found for job %s: %s' % (job.job_id, candidates[-1]))
        return None

    def locate(self, job):
        if not job.is_msgfplus:
            for suffix in [ '_xt' + DOT_PEPXML_GZ, DOT_PEPXML_GZ ]:
                source = self._find_source(job, job.dataset_name + suffix)
                if source is not None:
                    return [ SearchResult(_copy_into(source, self.work_directory, self._target_name(job, suffix)), ()) ]
            return []

        result = self._locate_mzid(job, 0)
        if result is not None:
            return [ result ]
        if not job.split_count:
            return []

        results = []
        for part in range(1, job.split_count + 1):
            result = self._locate_mzid(job, part)
            if result is None:
                return []
            results.append(result)
        return results
