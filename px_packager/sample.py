
"""Per-result-file sample metadata and submission-wide annotation accumulators."""

import logging

from .cvparam import format_cv, validate_cv

logger = logging.getLogger(__name__)

UNCLASSIFIED_NEWT_ID = 2323
UNCLASSIFIED_NEWT_NAME = 'unclassified Bacteria'

DEFAULT_TISSUE_CV = '[PRIDE, PRIDE:0000442, Tissue not applicable to dataset, ]'
DEFAULT_TISSUE_CV_MOUSE_HUMAN = '[BTO, BTO:0000089, blood, ]'

# legacy tissue ontology namespace which must be rewritten before use
LEGACY_TISSUE_NAMESPACE = 'BRENDA'
TISSUE_NAMESPACE = 'BTO'

def newt_cv(newt_id, newt_name):
    """Return the NEWT species CV string, using 'unclassified Bacteria' for id 0."""
    if not newt_id:
        newt_id, newt_name = UNCLASSIFIED_NEWT_ID, UNCLASSIFIED_NEWT_NAME
    return format_cv('NEWT', str(newt_id), newt_name)

def tissue_cv(tissue_id, tissue_name):
    return format_cv(TISSUE_NAMESPACE, tissue_id, tissue_name)

def fix_tissue_namespace(cv):
    """Rewrite the legacy BRENDA namespace to BTO."""
    if LEGACY_TISSUE_NAMESPACE in cv:
        return cv.replace(LEGACY_TISSUE_NAMESPACE, TISSUE_NAMESPACE)
    return cv

class SampleMetadata (object):
    """Biological and instrument annotation for one result file."""

    def __init__(self):
        self.species = ''
        self.tissue = ''
        self.cell_type = ''
        self.disease = ''
        # keyed by lower-cased accession, values are CvParamInfo
        self.modifications = {}
        self.instrument_group = ''
        self.instrument_name = ''
        self.quantification = ''
        self.experimental_factor = ''

    def add_modification(self, cv_info):
        """Idempotently add a modification, first write wins by accession."""
        key = cv_info.accession.lower()
        if key not in self.modifications:
            self.modifications[key] = cv_info

    def modifications_cv(self):
        """Modification CVs comma-separated with no space after the comma."""
        return ','.join([ cv_info.to_cv() for cv_info in self.modifications.values() ])

class SubmissionAccumulators (object):
    """Submission-wide distinct value sets consumed by the manifest serializer.

    Insertion is idempotent by key and nothing is ever removed.  A new
    instance is constructed for each run.
    """

    def __init__(self):
        # in first-use order
        self.search_tools = []
        # instrument group -> instrument names in first-use order
        self.instrument_groups = {}
        # NEWT id -> species name
        self.species = {}
        # BTO id -> tissue name
        self.tissues = {}
        # lower-cased accession -> CvParamInfo
        self.modifications = {}

    def add_search_tool(self, tool_name):
        if tool_name not in self.search_tools:
            self.search_tools.append(tool_name)

    def store_instrument(self, instrument_group, instrument_name):
        names = self.instrument_groups.setdefault(instrument_group, [])
        if instrument_name not in names:
            names.append(instrument_name)

    def add_species(self, newt_id, newt_name):
        if not newt_id:
            newt_id, newt_name = UNCLASSIFIED_NEWT_ID, UNCLASSIFIED_NEWT_NAME
        self.species.setdefault(newt_id, newt_name)

    def add_tissue(self, tissue_id, tissue_name):
        if tissue_id and tissue_id.strip():
            self.tissues.setdefault(tissue_id, tissue_name)

    def add_modification(self, cv_info):
        self.modifications.setdefault(cv_info.accession.lower(), cv_info)

    def has_human_or_mouse(self):
        for name in self.species.values():
            lowered = (name or '').lower()
            if 'homo sapiens' in lowered or 'mus musculus' in lowered:
                return True
        return False

class SampleMetadataAccumulator (object):
    """Builds, stores and looks up SampleMetadata by result file name."""

    def __init__(self, accumulators):
        """Construct accumulator bound to the run's SubmissionAccumulators.

        :param accumulators: A SubmissionAccumulators instance receiving submission-wide modifications.
        """
        self.accumulators = accumulators
        self._by_name = {}

    def build_for_job(self, job, dataset_override, template_params):
        """Return new SampleMetadata for a job.

        :param job: A JobInfo instance
        :param dataset_override: A DatasetInfo with tissue annotation, or None
        :param template_params: The read-only template parameter dict

        Tissue precedence is dataset annotation, then the template
        'tissue' value, then DEFAULT_TISSUE_CV.  All CV-bearing fields
        pass through validate_cv().
        """
        sample = SampleMetadata()
        sample.species = validate_cv(newt_cv(job.organism_id, job.organism_name))

        tissue = fix_tissue_namespace(template_params.get('tissue', DEFAULT_TISSUE_CV))
        if dataset_override is not None and dataset_override.tissue_id and dataset_override.tissue_id.strip():
            tissue = tissue_cv(dataset_override.tissue_id, dataset_override.tissue_name)
        sample.tissue = validate_cv(tissue)

        sample.cell_type = validate_cv(template_params['cell_type']) if 'cell_type' in template_params else ''
        sample.disease = validate_cv(template_params['disease']) if 'disease' in template_params else ''

        sample.instrument_group = job.instrument_group
        sample.instrument_name = job.instrument_name
        sample.quantification = ''
        sample.experimental_factor = job.experiment_name
        return sample

    def record_modification(self, sample, accession, cv_info):
        """Record a modification on both the sample and the submission.

        The accession is treated as immutable once seen: first write wins.
        """
        if accession.lower() != cv_info.accession.lower():
            cv_info = cv_info._replace(accession=accession)
        sample.add_modification(cv_info)
        self.accumulators.add_modification(cv_info)

    def store(self, file_name, sample):
        """Associate sample with a (normalized) result file name, first store wins."""
        key = file_name.lower()
        if key not in self._by_name:
            self._by_name[key] = sample
        return self._by_name[key]

    def lookup(self, file_name):
        """Case-insensitive lookup, returning None when absent."""
        return self._by_name.get(file_name.lower())

    def __len__(self):
        return len(self._by_name)
