import datetime
import logging

from px_packager.terms import terms
from px_packager.cvparam import CvParamInfo
from px_packager.filegraph import FileGraphRegistry
from px_packager.sample import SubmissionAccumulators, SampleMetadataAccumulator
from px_packager.manifest import (
    ManifestSerializer, submission_type, partial_reason, strip_job_addon, manifest_filename,
    FILE_TABLE_COLUMNS, SAMPLE_TABLE_COLUMNS, NO_PTMS_CV, TBD,
)


def populate(registry, job, counts):
    """Register result entries by type, e.g. {Raw: 2, ResultSearchId: 1}."""
    for px_file_type, count in counts.items():
        for i in range(count):
            path = '/w/%s_%s_%d.dat' % (job.dataset_name, px_file_type.split(':')[1], i)
            file_id = registry.register_file(path, job)
            registry.register_result(file_id, px_file_type, path, job)


def create_serializer(registry=None, template_params=None):
    accumulators = SubmissionAccumulators()
    samples = SampleMetadataAccumulator(accumulators)
    return ManifestSerializer(registry or FileGraphRegistry(), samples, accumulators, template_params or {}, 'PX_Results_1')


def mtd_values(rows, key):
    return [ row[2] for row in rows if row[0:2] == ['MTD', key] ]


class TestSubmissionType:

    def test_complete(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {
            terms.px_file_type.ResultSearchId: 2,
            terms.px_file_type.Result: 2,
            terms.px_file_type.Raw: 2,
        })
        assert submission_type(registry) == terms.submission_type.COMPLETE

    def test_fewer_search_than_legacy(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {
            terms.px_file_type.ResultSearchId: 1,
            terms.px_file_type.Result: 2,
            terms.px_file_type.Raw: 2,
        })
        assert submission_type(registry) == terms.submission_type.PARTIAL

    def test_fewer_raw_than_legacy(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {
            terms.px_file_type.Search: 2,
            terms.px_file_type.Result: 2,
            terms.px_file_type.Raw: 1,
        })
        assert submission_type(registry) == terms.submission_type.PARTIAL

    def test_empty_registry(self):
        assert submission_type(FileGraphRegistry()) == terms.submission_type.PARTIAL

    def test_legacy_only(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {terms.px_file_type.Result: 1, terms.px_file_type.Raw: 1})
        assert submission_type(registry) == terms.submission_type.PARTIAL

    def test_search_without_legacy(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {terms.px_file_type.ResultSearchId: 1})
        assert submission_type(registry) == terms.submission_type.COMPLETE

    def test_submission_type_line(self, make_job):
        registry = FileGraphRegistry()
        populate(registry, make_job(1, 'DS'), {
            terms.px_file_type.ResultSearchId: 2,
            terms.px_file_type.Result: 2,
            terms.px_file_type.Raw: 2,
        })
        rows = create_serializer(registry).rows()
        assert mtd_values(rows, 'submission_type') == ['COMPLETE']
        assert mtd_values(rows, 'reason_for_partial') == []


class TestPartialReason:

    def test_one_tool(self):
        assert partial_reason(['MSGFPlus']).endswith('using search tool MSGFPlus')

    def test_two_tools(self):
        assert partial_reason(['MSGFPlus', 'XTandem']).endswith('using search tools MSGFPlus and XTandem')

    def test_three_tools(self):
        assert partial_reason(['XTandem', 'MSGFPlus', 'Sequest']).endswith('using search tools MSGFPlus, XTandem, and Sequest')


class TestDefaults:

    def test_empty_accumulators(self):
        rows = create_serializer().rows()
        species = mtd_values(rows, 'species')
        assert len(species) == 1
        assert '2323' in species[0]
        assert mtd_values(rows, 'modification') == [NO_PTMS_CV]
        assert mtd_values(rows, 'tissue') == [TBD + '[PRIDE, PRIDE:0000442, Tissue not applicable to dataset, ]']
        assert mtd_values(rows, 'instrument') == [TBD + '[MS, MS:1000031, instrument model, CUSTOM UNKNOWN MASS SPEC]']
        assert mtd_values(rows, 'submission_type') == ['PARTIAL']
        assert len(mtd_values(rows, 'reason_for_partial')) == 1

    def test_human_default_tissue(self):
        serializer = create_serializer()
        serializer.accumulators.add_species(9606, 'Homo sapiens')
        rows = serializer.rows()
        assert mtd_values(rows, 'species') == ['[NEWT, 9606, Homo sapiens, ]']
        assert mtd_values(rows, 'tissue') == [TBD + '[BTO, BTO:0000089, blood, ]']

    def test_minimum_length_padding(self):
        rows = create_serializer().rows()
        for key in ['project_description', 'sample_processing_protocol', 'data_processing_protocol']:
            value = mtd_values(rows, key)[0]
            assert len(value) >= 50
            assert value.endswith('__')

    def test_pubmed_only_with_template(self):
        assert mtd_values(create_serializer().rows(), 'pubmed_id') == []
        assert mtd_values(create_serializer(template_params={'pubmed_id': '12345'}).rows(), 'pubmed_id') == ['12345']


class TestTemplateOverrides:

    def test_override_and_auto_defined(self):
        serializer = create_serializer(template_params={
            'submitter_name': 'Jane Doe',
            'experiment_type': 'Auto-Defined',
            'tissue': '[BRENDA, BTO:0000142, brain]',
            'project_description': 'short',
        })
        rows = serializer.rows()
        assert mtd_values(rows, 'submitter_name') == ['Jane Doe']
        assert mtd_values(rows, 'experiment_type') == ['[PRIDE, PRIDE:0000429, Shotgun proteomics, ]']
        assert mtd_values(rows, 'tissue') == ['[BTO, BTO:0000142, brain, ]']
        assert mtd_values(rows, 'project_description')[0].startswith('short__')

    def test_empty_value_with_minimum_length(self):
        serializer = create_serializer(template_params={'keywords': ''})
        assert serializer.header('data_processing_protocol', '', minimum_length=50)[2].startswith('**** Value must be at least 50 characters long **** ')


class TestInstrumentsAndMods:

    def test_instruments_deduplicated_by_accession(self):
        serializer = create_serializer()
        serializer.accumulators.store_instrument('Orbitrap', 'LTQ_Orb_1')
        serializer.accumulators.store_instrument('Orbitrap', 'LTQ_Orb_2')
        serializer.accumulators.store_instrument('Unknown_1', 'x')
        serializer.accumulators.store_instrument('Unknown_2', 'y')
        assert mtd_values(serializer.rows(), 'instrument') == [
            '[MS, MS:1000449, LTQ Orbitrap, ]',
            '[MS, MS:1000031, instrument model, CUSTOM UNKNOWN MASS SPEC]',
        ]

    def test_modifications(self):
        serializer = create_serializer()
        serializer.accumulators.add_modification(CvParamInfo('UNIMOD', 'UNIMOD:35', 'Oxidation'))
        serializer.accumulators.add_modification(CvParamInfo('UNIMOD', 'UNIMOD:35', 'Oxidation'))
        assert mtd_values(serializer.rows(), 'modification') == ['[UNIMOD, UNIMOD:35, Oxidation, ]']


class TestTables:

    def _serializer(self, make_job, template_params=None):
        registry = FileGraphRegistry()
        job = make_job(100, 'Dataset_A')
        raw_id = registry.register_file('/raw/Dataset_A.raw', job)
        registry.register_result(raw_id, terms.px_file_type.Raw, '/raw/Dataset_A.raw', job)
        peak_id = registry.register_file('/w/Dataset_A.mgf', job)
        registry.register_result(peak_id, terms.px_file_type.Peak, '/w/Dataset_A.mgf', job)
        search_id = registry.register_file('/w/Dataset_A_Job100_msgfplus.mzid.gz', job)
        registry.register_result(search_id, terms.px_file_type.ResultSearchId, '/w/Dataset_A_Job100_msgfplus.mzid.gz', job)
        registry.add_mapping(search_id, peak_id)
        registry.add_mapping(search_id, raw_id)
        serializer = create_serializer(registry, template_params)
        return serializer, job

    def test_file_table(self, make_job):
        serializer, job = self._serializer(make_job)
        rows = serializer.file_rows()
        assert rows[0] == FILE_TABLE_COLUMNS
        assert rows[1] == ['FME', '1', 'RAW', 'D:\\Upload\\PX_Results_1\\Dataset_A.raw', '']
        assert rows[2] == ['FME', '2', 'PEAK', 'D:\\Upload\\PX_Results_1\\Dataset_A.mgf', '']
        assert rows[3] == ['FME', '3', 'RESULT', 'D:\\Upload\\PX_Results_1\\Dataset_A_Job100_msgfplus.mzid.gz', '2,1']
        assert all([ len(row) == 5 for row in rows ])

    def test_sample_table_with_job_addon_fallback(self, make_job):
        serializer, job = self._serializer(make_job, template_params={'cell_type': '[CL, CL:0000081, blood cell, ]'})
        sample = serializer.samples.build_for_job(job, None, serializer.template_params)
        serializer.samples.record_modification(sample, 'UNIMOD:35', CvParamInfo('UNIMOD', 'UNIMOD:35', 'Oxidation'))
        serializer.samples.record_modification(sample, 'UNIMOD:4', CvParamInfo('UNIMOD', 'UNIMOD:4', 'Carbamidomethyl'))
        serializer.samples.store('Dataset_A_msgfplus.mzid.gz', sample)

        rows = serializer.sample_rows()
        assert rows[0] == SAMPLE_TABLE_COLUMNS
        assert len(rows) == 2
        assert rows[1] == [
            'SME', '3',
            '[NEWT, 1639, Shewanella oneidensis MR-1, ]',
            '[PRIDE, PRIDE:0000442, Tissue not applicable to dataset, ]',
            '[CL, CL:0000081, blood cell, ]',
            '',
            '[UNIMOD, UNIMOD:35, Oxidation, ],[UNIMOD, UNIMOD:4, Carbamidomethyl, ]',
            '[MS, MS:1002523, Q Exactive HF, ]',
            '',
            'Exp_Dataset_A',
        ]

    def test_quantification_template_value(self, make_job):
        serializer, job = self._serializer(make_job, template_params={'quantification': '[PRIDE, PRIDE:0000436, Spectral counting]'})
        serializer.samples.store('Dataset_A_msgfplus.mzid.gz', serializer.samples.build_for_job(job, None, serializer.template_params))
        assert serializer.sample_rows()[1][8] == '[PRIDE, PRIDE:0000436, Spectral counting, ]'

    def test_quantification_auto_defined(self, make_job):
        serializer, job = self._serializer(make_job, template_params={'quantification': 'Auto-Defined'})
        serializer.samples.store('Dataset_A_msgfplus.mzid.gz', serializer.samples.build_for_job(job, None, serializer.template_params))
        assert serializer.sample_rows()[1][8] == ''

    def test_missing_sample_metadata(self, make_job, caplog):
        serializer, job = self._serializer(make_job)
        with caplog.at_level(logging.WARNING):
            rows = serializer.sample_rows()
        assert rows[1] == ['SME', '3'] + [''] * 8
        assert 'Sample Metadata not found' in caplog.text

    def test_write(self, make_job, tmp_path):
        serializer, job = self._serializer(make_job)
        path = serializer.write(str(tmp_path / 'out.px'))
        lines = open(path, encoding='utf-8').read().split('\n')
        assert lines[0].startswith('MTD\tsubmitter_name\t')
        fmh = lines.index('FMH\tfile_id\tfile_type\tfile_path\tfile_mapping')
        assert lines[fmh - 1] == ''
        smh = lines.index('\t'.join(SAMPLE_TABLE_COLUMNS))
        assert lines[smh - 1] == ''
        assert lines[smh + 1].split('\t')[0:2] == ['SME', '3']
        assert len(lines[smh + 1].split('\t')) == 10


class TestHelpers:

    def test_strip_job_addon(self):
        assert strip_job_addon('Dataset_A_Job100_msgfplus.mzid.gz') == 'Dataset_A_msgfplus.mzid.gz'
        assert strip_job_addon('Dataset_A_job7_MSGFPlus_Part1.mzid.gz') == 'Dataset_A_MSGFPlus_Part1.mzid.gz'
        assert strip_job_addon('Dataset_A_msgfplus.mzid.gz') == 'Dataset_A_msgfplus.mzid.gz'

    def test_manifest_filename(self):
        assert manifest_filename(datetime.datetime(2024, 3, 5, 9, 7)) == 'PX_Submission_2024-03-05_09-07.px'
