
import os
import io
import csv
import json
import logging
import pkgutil

import frictionless

from . import configs
from .exception import IncompatibleDatapackageModel, InvalidDatapackage

"""
Input data package handling

The jobs and datasets of one data package are described by a
frictionless tabular data package with two TSV resources:

- job: one row per analysis job to package
- dataset: one row per dataset of the data package

"""
logger = logging.getLogger(__name__)

# some special singleton strings...
class _PackageDataName (object):
    def __init__(self, package, filename):
        self.package = package
        self.filename = filename

    def __str__(self):
        return self.filename

    def get_data(self, key=None):
        """Get named content as raw buffer

        :param key: Alternate name to lookup in package instead of self
        """
        if key is None:
            key = self.filename
        return pkgutil.get_data(self.package.__name__, key)

    def get_data_str(self, key=None):
        """Get named content as unicode decoded str

        :param key: Alternate name to lookup in package instead of self
        """
        return self.get_data(key).decode()

input_schema_json = _PackageDataName(configs, 'px-input-datapackage.json')

_true_strings = {'true', 'yes', '1', 't', 'y'}

def _int_or_zero(value):
    if value is None or str(value).strip() == '':
        return 0
    return int(value)

def _bool(value):
    if isinstance(value, bool):
        return value
    return str(value or '').strip().lower() in _true_strings

def _str(value):
    return (value or '').strip()

class JobInfo (object):
    """One analysis job of the data package."""

    # result types produced by MS-GF+ searches
    msgfplus_result_types = {'msgfplus', 'msg_peptide_hit'}

    def __init__(self, job_id, dataset_name, dataset_id=0, tool_name='', result_type='',
                 instrument_group='', instrument_name='', experiment_name='',
                 organism_id=0, organism_name='', split_count=0, searched_mzml=False,
                 results_directory=''):
        self.job_id = job_id
        self.dataset_name = dataset_name
        self.dataset_id = dataset_id
        self.tool_name = tool_name
        self.result_type = result_type
        self.instrument_group = instrument_group
        self.instrument_name = instrument_name
        self.experiment_name = experiment_name
        self.organism_id = organism_id
        self.organism_name = organism_name
        self.split_count = split_count
        self.searched_mzml = searched_mzml
        self.results_directory = results_directory

    @property
    def is_msgfplus(self):
        return self.result_type.lower() in self.msgfplus_result_types

    @classmethod
    def from_row(cls, row, base_dir=''):
        results_directory = _str(row.get('results_directory'))
        if results_directory and base_dir:
            results_directory = os.path.join(base_dir, results_directory)
        return cls(
            _int_or_zero(row['job_id']),
            _str(row['dataset_name']),
            _int_or_zero(row.get('dataset_id')),
            _str(row.get('tool_name')),
            _str(row.get('result_type')),
            _str(row.get('instrument_group')),
            _str(row.get('instrument_name')),
            _str(row.get('experiment_name')),
            _int_or_zero(row.get('organism_id')),
            _str(row.get('organism_name')),
            _int_or_zero(row.get('split_count')),
            _bool(row.get('searched_mzml')),
            results_directory,
        )

    def __repr__(self):
        return '<JobInfo %s %s %s>' % (self.job_id, self.dataset_name, self.tool_name)

class DatasetInfo (object):
    """One dataset of the data package."""

    def __init__(self, dataset_id, dataset_name, tissue_id='', tissue_name='', raw_file_path='',
                 organism_id=0, organism_name='', instrument_group='', instrument_name='',
                 dataset_directory=''):
        self.dataset_id = dataset_id
        self.dataset_name = dataset_name
        self.tissue_id = tissue_id
        self.tissue_name = tissue_name
        self.raw_file_path = raw_file_path
        self.organism_id = organism_id
        self.organism_name = organism_name
        self.instrument_group = instrument_group
        self.instrument_name = instrument_name
        self.dataset_directory = dataset_directory

    def placeholder_job(self):
        """Return a pseudo JobInfo standing in for this dataset when no job covers it."""
        return JobInfo(
            0, self.dataset_name, self.dataset_id,
            instrument_group=self.instrument_group,
            instrument_name=self.instrument_name,
            organism_id=self.organism_id,
            organism_name=self.organism_name,
        )

    @classmethod
    def from_row(cls, row, base_dir=''):
        def resolve(path):
            path = _str(path)
            if path and base_dir and not os.path.isabs(path) and '\\' not in path:
                return os.path.join(base_dir, path)
            return path
        return cls(
            _int_or_zero(row['dataset_id']),
            _str(row['dataset_name']),
            _str(row.get('tissue_id')),
            _str(row.get('tissue_name')),
            resolve(row.get('raw_file_path')),
            _int_or_zero(row.get('organism_id')),
            _str(row.get('organism_name')),
            _str(row.get('instrument_group')),
            _str(row.get('instrument_name')),
            resolve(row.get('dataset_directory')),
        )

    def __repr__(self):
        return '<DatasetInfo %s %s>' % (self.dataset_id, self.dataset_name)

class PxInputDataPackage (object):
    """Input data package definition and content."""

    required_resources = ('job', 'dataset')

    def __init__(self, package_filename):
        """Construct PxInputDataPackage from given package definition filename.

        The special singleton input_schema_json selects the built-in
        canonical definition.
        """
        if not isinstance(package_filename, (str, _PackageDataName)):
            raise TypeError('package_filename must be a str filepath or built-in package data name')
        self.package_filename = package_filename
        try:
            if isinstance(package_filename, _PackageDataName):
                self.package_doc = json.loads(package_filename.get_data_str())
                self.base_dir = ''
            else:
                with io.open(package_filename, 'r', encoding='utf-8') as f:
                    self.package_doc = json.load(f)
                self.base_dir = os.path.dirname(os.path.abspath(package_filename))
        except (OSError, ValueError) as e:
            raise InvalidDatapackage('Unable to read datapackage "%s": %s' % (package_filename, e))

    def resource(self, rname):
        for resource in self.package_doc.get('resources', []):
            if resource.get('name') == rname:
                return resource
        return None

    def field_names(self, rname):
        resource = self.resource(rname)
        if resource is None:
            return []
        return [ field['name'] for field in resource.get('schema', {}).get('fields', []) ]

    def validate_model_subset(self, candidate):
        """Check that candidate's model provides everything self defines.

        :param candidate: A PxInputDataPackage instance

        Extra resources and extra fields are tolerated.  Raises
        IncompatibleDatapackageModel if a resource or field is missing.
        """
        missing_rnames = [ rname for rname in self.required_resources if candidate.resource(rname) is None ]
        if missing_rnames:
            raise IncompatibleDatapackageModel(
                'Missing resources: %s' % (','.join(missing_rnames),)
            )
        for rname in self.required_resources:
            candidate_fields = set(candidate.field_names(rname))
            missing_fnames = [ fname for fname in self.field_names(rname) if fname not in candidate_fields ]
            if missing_fnames:
                raise IncompatibleDatapackageModel(
                    'Missing fields in resource %s: %s' % (rname, ','.join(missing_fnames),)
                )

    def validate_content(self):
        """Validate TSV content against the package's own descriptor."""
        packagefile = str(self.package_filename)
        if os.getenv('PXPKG_SKIP_FRICTIONLESS', 'false').lower() == 'true':
            logger.info('SKIPPING validation of frictionless datapackage at "%s" due to PXPKG_SKIP_FRICTIONLESS environment variable!' % packagefile)
            return
        logger.info('Validating frictionless datapackage at "%s"' % packagefile)
        report = frictionless.validate(packagefile)
        if not report.valid:
            messages = [ row[0] for row in report.flatten(['message']) ]
            raise InvalidDatapackage(
                'Found %d errors in datapackage "%s". First error: %s' % (
                    len(messages),
                    os.path.basename(packagefile),
                    messages[0] if messages else 'unknown',
            ))
        logger.info('Frictionless package valid.')

    def read_rows(self, rname):
        """Yield row dicts from the named TSV resource."""
        resource = self.resource(rname)
        path = os.path.join(self.base_dir, resource['path'])
        try:
            with io.open(path, 'r', encoding='utf-8', newline='') as f:
                reader = csv.DictReader(f, delimiter='\t')
                for row in reader:
                    yield row
        except UnicodeDecodeError as e:
            raise InvalidDatapackage('Resource file "%s" is not valid UTF-8 data: %s' % (resource['path'], e))

    def jobs(self):
        """Return JobInfo list in file order, dropping duplicate job ids (first wins)."""
        jobs = {}
        for row in self.read_rows('job'):
            job = JobInfo.from_row(row, self.base_dir)
            if job.job_id in jobs:
                logger.warning('Ignoring duplicate job %s in datapackage' % job.job_id)
                continue
            jobs[job.job_id] = job
        return list(jobs.values())

    def datasets(self):
        """Return {dataset_id: DatasetInfo} in file order."""
        datasets = {}
        for row in self.read_rows('dataset'):
            dataset = DatasetInfo.from_row(row, self.base_dir)
            datasets.setdefault(dataset.dataset_id, dataset)
        return datasets

def raw_file_paths(datasets):
    """Return {dataset_name: raw_file_path} for datasets naming a raw file."""
    return {
        dataset.dataset_name: dataset.raw_file_path
        for dataset in datasets.values()
        if dataset.raw_file_path
    }

def load_input_package(packagefile):
    """Check, validate and load an input data package.

    :param packagefile: Path to the datapackage.json file

    Returns (jobs, datasets) where jobs is a list of JobInfo and
    datasets is a dict of DatasetInfo keyed by dataset id.
    """
    if not os.path.isfile(packagefile):
        raise InvalidDatapackage('Datapackage file "%s" not found' % packagefile)
    canon_dp = PxInputDataPackage(input_schema_json)
    submitted_dp = PxInputDataPackage(packagefile)
    canon_dp.validate_model_subset(submitted_dp)
    submitted_dp.validate_content()
    jobs = submitted_dp.jobs()
    datasets = submitted_dp.datasets()
    logger.info('Loaded %d jobs and %d datasets from "%s"' % (len(jobs), len(datasets), packagefile))
    return jobs, datasets
