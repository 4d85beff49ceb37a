
import os
import sys
import json
import shutil
import logging

from deriva.core import init_logging

from . import exception
from .terms import terms, term_label
from .datapackage import load_input_package, raw_file_paths
from .template import read_template_file
from .sample import SubmissionAccumulators, SampleMetadataAccumulator
from .filegraph import FileGraphRegistry
from .classifier import JobClassifier, sort_jobs
from .manifest import ManifestSerializer, manifest_filename, DEFAULT_UPLOAD_ROOT
from .staging import StagingArea
from .providers import DirectoryPeakListProvider, DirectorySearchResultProvider

logger = logging.getLogger(__name__)

_true_strings = {'true', 'yes', '1'}
_false_strings = {'false', 'no', '0'}

def _param_bool(params, key, default):
    value = params.get(key, default)
    if isinstance(value, bool):
        return value
    if str(value).strip().lower() in _true_strings:
        return True
    if str(value).strip().lower() in _false_strings:
        return False
    raise exception.ConfigurationError('Run option %s has invalid boolean value %r' % (key, value))

class RunOptions (object):
    """Options controlling one packaging run."""

    def __init__(self, results_directory_name, cache_directory_path, create_mgf_files=True,
                 include_mzid_files=True, create_legacy_result_files=False,
                 assume_instrument_data_unpurged=True, max_job_failures=10,
                 upload_root=DEFAULT_UPLOAD_ROOT, px_submission_template=None,
                 create_upload_bag=False):
        self.results_directory_name = results_directory_name
        self.cache_directory_path = cache_directory_path
        self.create_mgf_files = create_mgf_files
        self.include_mzid_files = include_mzid_files
        self.create_legacy_result_files = create_legacy_result_files
        self.assume_instrument_data_unpurged = assume_instrument_data_unpurged
        self.max_job_failures = max_job_failures
        self.upload_root = upload_root
        self.px_submission_template = px_submission_template
        self.create_upload_bag = create_upload_bag

    @property
    def transfer_directory(self):
        return os.path.join(self.cache_directory_path, self.results_directory_name)

    @classmethod
    def from_params(cls, params):
        """Build RunOptions from a job parameter dict.

        :param params: Dict keyed by job parameter name, e.g. loaded from a JSON file

        Raises ConfigurationError if a required parameter is missing or
        a value is malformed.
        """
        for key in ['ResultsDirectoryName', 'CacheDirectoryPath']:
            if not str(params.get(key) or '').strip():
                raise exception.ConfigurationError('Required run option %s is missing' % key)
        try:
            max_job_failures = int(params.get('MaxJobFailures', 10))
        except (TypeError, ValueError):
            raise exception.ConfigurationError('Run option MaxJobFailures must be an integer, not %r' % params.get('MaxJobFailures'))
        return cls(
            params['ResultsDirectoryName'],
            params['CacheDirectoryPath'],
            create_mgf_files=_param_bool(params, 'CreateMGFFiles', True),
            include_mzid_files=_param_bool(params, 'IncludeMzIdFiles', True),
            create_legacy_result_files=_param_bool(params, 'CreateLegacyResultFiles', False),
            assume_instrument_data_unpurged=_param_bool(params, 'AssumeInstrumentDataUnpurged', True),
            max_job_failures=max_job_failures,
            upload_root=params.get('UploadRoot') or DEFAULT_UPLOAD_ROOT,
            px_submission_template=params.get('PXSubmissionTemplate') or None,
            create_upload_bag=_param_bool(params, 'CreateUploadBag', False),
        )

class PxSubmission (object):
    """Packaging run for one data package.

    Typical call-sequence:

      options = RunOptions.from_params(params)
      submission = PxSubmission('datapackage.json', work_dir, options)
      outcome, message = submission.run()

    The run processes jobs one at a time grouped by dataset, adds
    placeholders for datasets without jobs, then writes the .px
    manifest once.  No manifest is written if the run is aborted.
    """

    def __init__(self, packagefile, work_directory, options,
                 peak_list_provider=None, search_result_provider=None, legacy_result_provider=None,
                 jobs=None, datasets=None):
        """Construct packaging run.

        :param packagefile: Input datapackage.json path (ignored when jobs and datasets are given)
        :param work_directory: Local work directory (also where the template and manifest live)
        :param options: RunOptions
        :param peak_list_provider: PeakListProvider (default DirectoryPeakListProvider)
        :param search_result_provider: SearchResultProvider (default DirectorySearchResultProvider)
        :param legacy_result_provider: LegacyResultProvider, required for legacy result files
        :param jobs: Optional pre-loaded JobInfo list
        :param datasets: Optional pre-loaded dict of DatasetInfo keyed by dataset id
        """
        self.packagefile = packagefile
        self.work_directory = work_directory
        self.options = options
        self.peak_list_provider = peak_list_provider
        self.search_result_provider = search_result_provider
        self.legacy_result_provider = legacy_result_provider
        self.jobs = jobs
        self.datasets = datasets
        self.failures = []
        self.files_to_skip = []
        self.manifest_path = None
        self.registry = None

    def load_template(self):
        """Return template parameters, raising ConfigurationError if a configured template is missing."""
        if not self.options.px_submission_template:
            return {}
        path = os.path.join(self.work_directory, self.options.px_submission_template)
        if not os.path.isfile(path):
            raise exception.ConfigurationError('PX submission template file not found: %s' % path)
        return read_template_file(path)

    def prepare(self):
        if self.jobs is None or self.datasets is None:
            self.jobs, self.datasets = load_input_package(self.packagefile)
        if self.options.create_legacy_result_files and self.legacy_result_provider is None:
            raise exception.ConfigurationError('Legacy result files requested but no legacy result provider is available')
        os.makedirs(self.work_directory, exist_ok=True)
        self.template_params = self.load_template()

    def process(self):
        """Process all jobs and write the manifest, returning its path.

        Raises RunAborted if more than options.max_job_failures jobs
        fail.  Per-job failures below that threshold are collected in
        self.failures.
        """
        self.prepare()

        accumulators = SubmissionAccumulators()
        samples = SampleMetadataAccumulator(accumulators)
        self.registry = registry = FileGraphRegistry()
        staging = StagingArea(self.options.transfer_directory)

        peak_list_provider = self.peak_list_provider or DirectoryPeakListProvider(self.work_directory)
        search_result_provider = self.search_result_provider or DirectorySearchResultProvider(self.work_directory, self.jobs, staging)

        classifier = JobClassifier(
            registry, samples, accumulators, staging, self.options,
            peak_list_provider, search_result_provider, self.legacy_result_provider,
            raw_file_paths=raw_file_paths(self.datasets),
            datasets=self.datasets,
            template_params=self.template_params,
            work_directory=self.work_directory,
        )

        processed_dataset_ids = set()
        jobs = sort_jobs(self.jobs)
        for count, job in enumerate(jobs, 1):
            logger.debug('%d: Processing job %s, dataset %s' % (count, job.job_id, job.dataset_name))
            try:
                classifier.process_job(job)
            except exception.JobProcessingError as e:
                logger.error('Job %s (dataset %s) failed: %s' % (job.job_id, job.dataset_name, e))
                self.failures.append(e)
                if len(self.failures) > self.options.max_job_failures:
                    raise exception.RunAborted(
                        'Aborting after %d failed jobs (limit %d)' % (len(self.failures), self.options.max_job_failures),
                        len(self.failures)
                    )
            processed_dataset_ids.add(job.dataset_id)
            logger.debug(' ... processed %d / %d jobs' % (count, len(jobs)))

        classifier.finish()
        classifier.add_placeholders(self.datasets, processed_dataset_ids)
        self.files_to_skip = staging.finish()

        serializer = ManifestSerializer(
            registry, samples, accumulators, self.template_params,
            self.options.results_directory_name, self.options.upload_root,
        )
        self.manifest_path = serializer.write(os.path.join(self.work_directory, manifest_filename()))
        logger.info('Wrote %d file entries for %d jobs (%d failed) to %s' % (
            len(registry.result_entries()), len(jobs), len(self.failures), self.manifest_path,
        ))

        if self.options.create_upload_bag:
            shutil.copy2(self.manifest_path, staging.target_path(self.manifest_path))
            staging.make_upload_bag()

        return self.manifest_path

    def outcome(self):
        """Return the run outcome term given the collected job failures."""
        if not self.failures:
            return terms.outcome.success
        if all([ e.outcome == terms.outcome.file_not_found for e in self.failures ]):
            return terms.outcome.file_not_found
        return terms.outcome.failed

    def run(self):
        """Run packaging, returning (outcome, message)."""
        try:
            self.process()
        except exception.PxPackagerError as e:
            logger.error('Packaging failed: %s' % (e,))
            return terms.outcome.failed, str(e)

        outcome = self.outcome()
        if self.failures:
            message = '%d job(s) failed; first error: %s' % (len(self.failures), self.failures[0])
        else:
            message = 'Created %s' % os.path.basename(self.manifest_path)
        if self.files_to_skip:
            for path in self.files_to_skip:
                logger.warning('Skip during transfer: %s' % path)
            message += '; %d undeleted local file(s) to skip during transfer' % len(self.files_to_skip)
        return outcome, message

def main(subcommand, *args):
    """Command-line harness for the packaging library.

    Usage: python3 -m px_packager.submission <sub-command> ...

    Sub-commands:
    - 'run' <datapackage.json> <work_dir> <params.json>
       - Package all jobs of the data package and write the .px manifest
    - 'validate' <datapackage.json>
       - Check and validate the input data package only
    - 'template' <template.px>
       - Print the parameters parsed from a .px template as JSON

    Set environment variable PXPKG_SKIP_FRICTIONLESS=true to skip
    input validation or PXPKG_SKIP_BDBAG=true to skip bag creation.

    """
    init_logging(logging.INFO)

    if subcommand == 'run':
        if len(args) != 3:
            raise TypeError('"run" requires exactly three positional arguments: datapackage, work_dir, params')
        packagefile, work_dir, params_file = args
        with open(params_file, 'r') as f:
            options = RunOptions.from_params(json.load(f))
        outcome, message = PxSubmission(packagefile, work_dir, options).run()
        logger.info('Outcome %s: %s' % (term_label(outcome), message))
        return 0 if outcome == terms.outcome.success else 1
    elif subcommand == 'validate':
        if len(args) != 1:
            raise TypeError('"validate" requires exactly one positional argument: datapackage')
        jobs, datasets = load_input_package(args[0])
        logger.info('Datapackage valid with %d jobs and %d datasets' % (len(jobs), len(datasets)))
        return 0
    elif subcommand == 'template':
        if len(args) != 1:
            raise TypeError('"template" requires exactly one positional argument: template_file')
        sys.stdout.write(json.dumps(read_template_file(args[0]), indent=2) + '\n')
        return 0
    else:
        raise ValueError('unknown sub-command "%s"' % subcommand)

if __name__ == '__main__':
    exit(main(*sys.argv[1:]))
