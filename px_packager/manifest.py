
"""ProteomeXchange submission (.px) file writer.

The .px file is tab-delimited with three sections:

- MTD lines: header key/value pairs
- FMH/FME lines: the file table and its file mappings
- SMH/SME lines: sample metadata for each result file

"""

import io
import re
import ntpath
import logging
import datetime

from .terms import terms, term_label
from .cvparam import format_cv, validate_cv
from .instrument import resolve, resolve_or_default, instrument_cv
from .sample import DEFAULT_TISSUE_CV, DEFAULT_TISSUE_CV_MOUSE_HUMAN, newt_cv, tissue_cv, fix_tissue_namespace
from .filegraph import search_file_types

logger = logging.getLogger(__name__)

TBD = '******* UPDATE ****** '
AUTO_DEFINED = 'Auto-Defined'
DEFAULT_UPLOAD_ROOT = 'D:\\Upload'

DEFAULT_EXPERIMENT_TYPE_CV = format_cv('PRIDE', 'PRIDE:0000429', 'Shotgun proteomics')
DEFAULT_CELL_TYPE_CV = '[CL, CL:0000081, blood cell, ]'
DEFAULT_DISEASE_TYPE_CV = '[DOID, DOID:1612, breast cancer, ]'
DEFAULT_QUANTIFICATION_TYPE_CV = '[PRIDE, PRIDE:0000436, Spectral counting,]'
NO_PTMS_CV = format_cv('PRIDE', 'PRIDE:0000398', 'No PTMs are included in the dataset')
DELETION_WARNING = (
    " -- If you delete this line, assure that the corresponding column values on the SME rows are empty "
    "(leave the 'cell_type' and 'disease' column headers on the SMH line, "
    "but assure that the SME lines have blank entries for this column)"
)

# header keys whose values are CV strings
PARAMS_WITH_CVS = frozenset({
    'experiment_type',
    'species',
    'tissue',
    'instrument',
    'cell_type',
    'disease',
    'quantification',
    'modification',
})

FILE_TABLE_COLUMNS = ['FMH', 'file_id', 'file_type', 'file_path', 'file_mapping']
SAMPLE_TABLE_COLUMNS = [
    'SMH',
    'file_id',
    'species',
    'tissue',
    'cell_type',
    'disease',
    'modification',
    'instrument',
    'quantification',
    'experimental_factor',
]

_job_addon_regexp = re.compile(r'(_Job\d+)(_msgfplus)', re.IGNORECASE)

def manifest_filename(now=None):
    """Return PX_Submission_<YYYY-MM-DD_HH-MM>.px for now (default current local time)."""
    if now is None:
        now = datetime.datetime.now()
    return 'PX_Submission_%s.px' % now.strftime('%Y-%m-%d_%H-%M')

def submission_type(registry):
    """Return terms.submission_type.PARTIAL or COMPLETE for a populated registry.

    The conditions are evaluated in order and any match means PARTIAL:
    no search or legacy results at all; fewer search results than
    legacy results; fewer raw files than legacy results; no search
    results.
    """
    legacy_count = registry.count_by_type(terms.px_file_type.Result)
    raw_count = registry.count_by_type(terms.px_file_type.Raw)
    search_count = registry.count_by_types(search_file_types)

    if search_count == 0 and legacy_count == 0:
        logger.info('No search or legacy result files; submission is partial')
        return terms.submission_type.PARTIAL
    if legacy_count > 0 and search_count < legacy_count:
        logger.info('Fewer search result files than legacy result files; submission is partial')
        return terms.submission_type.PARTIAL
    if legacy_count > 0 and raw_count < legacy_count:
        logger.info('Fewer raw files than legacy result files; submission is partial')
        return terms.submission_type.PARTIAL
    if search_count == 0:
        logger.info('No search result files; submission is partial')
        return terms.submission_type.PARTIAL
    return terms.submission_type.COMPLETE

def partial_reason(search_tools):
    """Describe the search tools for the reason_for_partial header."""
    comment = 'Data produced by the DMS Processing pipeline using '
    tools = list(search_tools)
    if len(tools) == 1:
        comment += 'search tool %s' % tools[0]
    elif len(tools) == 2:
        comment += 'search tools %s and %s' % (tools[0], tools[1])
    elif len(tools) > 2:
        comment += 'search tools %s, and %s' % (', '.join(sorted(tools[0:-1])), tools[-1])
    return comment

def strip_job_addon(filename):
    """Return filename without a _Job<N> token placed before _msgfplus."""
    return _job_addon_regexp.sub(r'\2', filename, count=1)

class ManifestSerializer (object):
    """Serializes a completed file graph and its sample metadata to a .px file."""

    def __init__(self, registry, samples, accumulators, template_params, results_directory_name, upload_root=DEFAULT_UPLOAD_ROOT):
        """Construct serializer.

        :param registry: Completed FileGraphRegistry
        :param samples: SampleMetadataAccumulator
        :param accumulators: SubmissionAccumulators
        :param template_params: Template parameter dict (read-only)
        :param results_directory_name: Results directory name used in repository-side paths
        :param upload_root: Root of repository-side paths (default D:\\Upload)
        """
        self.registry = registry
        self.samples = samples
        self.accumulators = accumulators
        self.template_params = template_params or {}
        self.results_directory_name = results_directory_name
        self.upload_root = upload_root

    def template_value(self, key, value):
        """Return the template override for key, or value when absent or Auto-Defined."""
        override = self.template_params.get(key)
        if override is None or override.lower() == AUTO_DEFINED.lower():
            return value
        if key == 'tissue':
            override = fix_tissue_namespace(override)
        if key in PARAMS_WITH_CVS:
            override = validate_cv(override)
        return override

    def header(self, key, value, use_template=True, minimum_length=0):
        """Return one MTD row for key, applying template override and CV validation."""
        if use_template:
            value = self.template_value(key, value)

        if minimum_length > 0:
            if not value:
                value = '**** Value must be at least %d characters long **** ' % minimum_length
            while len(value) < minimum_length:
                value += '__'

        return ['MTD', key, value]

    def header_rows(self, submission_type_term):
        header = self.header
        rows = [
            header('submitter_name', TBD),
            header('submitter_email', TBD),
            header('submitter_affiliation', TBD),
            header('submitter_pride_login', TBD),
            header('lab_head_name', TBD),
            header('lab_head_email', TBD),
            header('lab_head_affiliation', TBD),
            header('project_title', TBD + 'User-friendly Article Title'),
            header('project_description', TBD + 'Summary sentence', minimum_length=50),
        ]
        if 'pubmed_id' in self.template_params:
            rows.append(header('pubmed_id', TBD))
        rows.extend([
            header('keywords', TBD),
            header('sample_processing_protocol', TBD, minimum_length=50),
            header('data_processing_protocol', TBD, minimum_length=50),
            header('experiment_type', DEFAULT_EXPERIMENT_TYPE_CV),
            ['MTD', 'submission_type', term_label(submission_type_term)],
        ])
        if submission_type_term == terms.submission_type.PARTIAL:
            rows.append(header('reason_for_partial', partial_reason(self.accumulators.search_tools), use_template=False))

        rows.extend(self.species_rows())
        rows.extend(self.tissue_rows())
        rows.append(header('cell_type', TBD + 'Optional, e.g. ' + DEFAULT_CELL_TYPE_CV + DELETION_WARNING))
        rows.append(header('disease', TBD + 'Optional, e.g. ' + DEFAULT_DISEASE_TYPE_CV + DELETION_WARNING))
        rows.append(header('quantification', TBD + 'Optional, e.g. ' + DEFAULT_QUANTIFICATION_TYPE_CV))
        rows.extend(self.instrument_rows())
        rows.extend(self.modification_rows())
        return rows

    def species_rows(self):
        if not self.accumulators.species:
            return [ self.header('species', TBD + newt_cv(0, '')) ]
        return [
            self.header('species', newt_cv(newt_id, newt_name), use_template=False)
            for newt_id, newt_name in self.accumulators.species.items()
        ]

    def tissue_rows(self):
        if not self.accumulators.tissues:
            if self.accumulators.has_human_or_mouse():
                return [ self.header('tissue', TBD + DEFAULT_TISSUE_CV_MOUSE_HUMAN) ]
            return [ self.header('tissue', TBD + DEFAULT_TISSUE_CV) ]
        return [
            self.header('tissue', tissue_cv(tissue_id, tissue_name))
            for tissue_id, tissue_name in self.accumulators.tissues.items()
        ]

    def instrument_rows(self):
        if not self.accumulators.instrument_groups:
            return [ self.header('instrument', TBD + resolve_or_default('', '')) ]
        rows = []
        accessions_written = set()
        for instrument_group, instrument_names in self.accumulators.instrument_groups.items():
            instrument_name = instrument_names[0] if instrument_names else ''
            accession, description = resolve(instrument_group, instrument_name)
            if accession in accessions_written:
                continue
            accessions_written.add(accession)
            rows.append(self.header('instrument', resolve_or_default(accession, description), use_template=False))
        return rows

    def modification_rows(self):
        if not self.accumulators.modifications:
            return [ self.header('modification', NO_PTMS_CV, use_template=False) ]
        return [
            self.header('modification', cv_info.to_cv(), use_template=False)
            for cv_info in self.accumulators.modifications.values()
        ]

    def file_path(self, filename):
        return ntpath.join(self.upload_root, self.results_directory_name, filename)

    def file_rows(self):
        rows = [ list(FILE_TABLE_COLUMNS) ]
        for entry in self.registry.result_entries():
            rows.append([
                'FME',
                str(entry.file_id),
                entry.type_name,
                self.file_path(entry.filename),
                ','.join([ str(parent_id) for parent_id in entry.parent_file_ids ]),
            ])
        return rows

    def _template_defines(self, key):
        return bool(self.template_params.get(key, '').strip())

    def lookup_sample(self, filename):
        sample = self.samples.lookup(filename)
        if sample is None:
            # file name may have been customized to include _Job<N>
            sample = self.samples.lookup(strip_job_addon(filename))
        return sample

    def sample_rows(self):
        rows = [ list(SAMPLE_TABLE_COLUMNS) ]
        include_cell_type = self._template_defines('cell_type')
        include_disease = self._template_defines('disease')
        for entry in self.registry.result_entries():
            if entry.type_name != 'RESULT':
                continue
            sample = self.lookup_sample(entry.filename)
            if sample is None:
                logger.warning(' Sample Metadata not found for %s' % entry.filename)
                rows.append(['SME', str(entry.file_id)] + [''] * (len(SAMPLE_TABLE_COLUMNS) - 2))
                continue
            rows.append([
                'SME',
                str(entry.file_id),
                sample.species,
                sample.tissue,
                sample.cell_type if include_cell_type else '',
                sample.disease if include_disease else '',
                sample.modifications_cv(),
                instrument_cv(sample.instrument_group, sample.instrument_name),
                self.template_value('quantification', sample.quantification),
                sample.experimental_factor,
            ])
        return rows

    def rows(self):
        """Return all manifest rows; an empty list stands for a blank line."""
        submission_type_term = submission_type(self.registry)
        return self.header_rows(submission_type_term) \
            + [ [] ] + self.file_rows() \
            + [ [] ] + self.sample_rows()

    def write(self, path):
        """Write the .px file to path and return path."""
        logger.info('Creating PX submission file: %s' % path)
        for px_file_type in [terms.px_file_type.Result, terms.px_file_type.Raw, terms.px_file_type.Peak, terms.px_file_type.ResultSearchId, terms.px_file_type.Search]:
            logger.debug(' Result stats: %d %s files' % (self.registry.count_by_type(px_file_type), term_label(px_file_type)))
        with io.open(path, 'w', encoding='utf-8', newline='\n') as f:
            for row in self.rows():
                f.write('\t'.join(row) + '\n')
        return path
