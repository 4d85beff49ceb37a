import json

import pytest

from px_packager.datapackage import JobInfo, DatasetInfo, input_schema_json


@pytest.fixture
def make_job():
    """Factory for JobInfo with MS-GF+ defaults."""
    def make(job_id, dataset_name, dataset_id=1, tool_name='MSGFPlus_MzML', result_type='MSGFPlus', **kwargs):
        kwargs.setdefault('instrument_group', 'QExactive')
        kwargs.setdefault('instrument_name', 'QExactHF03')
        kwargs.setdefault('experiment_name', 'Exp_' + dataset_name)
        kwargs.setdefault('organism_id', 1639)
        kwargs.setdefault('organism_name', 'Shewanella oneidensis MR-1')
        return JobInfo(job_id, dataset_name, dataset_id, tool_name, result_type, **kwargs)
    return make


@pytest.fixture
def make_dataset():
    def make(dataset_id, dataset_name, **kwargs):
        return DatasetInfo(dataset_id, dataset_name, **kwargs)
    return make


JOB_COLUMNS = [
    'job_id', 'dataset_name', 'dataset_id', 'tool_name', 'result_type', 'instrument_group',
    'instrument_name', 'experiment_name', 'organism_id', 'organism_name', 'split_count',
    'searched_mzml', 'results_directory',
]
DATASET_COLUMNS = [
    'dataset_id', 'dataset_name', 'tissue_id', 'tissue_name', 'raw_file_path', 'organism_id',
    'organism_name', 'instrument_group', 'instrument_name', 'dataset_directory',
]


@pytest.fixture
def write_package(tmp_path):
    """Write datapackage.json plus job.tsv and dataset.tsv from row dicts, returning the descriptor path."""
    def write(job_rows, dataset_rows, drop_field=None, drop_resource=None):
        descriptor = json.loads(input_schema_json.get_data_str())
        if drop_resource:
            descriptor['resources'] = [ r for r in descriptor['resources'] if r['name'] != drop_resource ]
        if drop_field:
            for resource in descriptor['resources']:
                resource['schema']['fields'] = [ f for f in resource['schema']['fields'] if f['name'] != drop_field ]
        (tmp_path / 'datapackage.json').write_text(json.dumps(descriptor), encoding='utf-8')
        for filename, columns, rows in [('job.tsv', JOB_COLUMNS, job_rows), ('dataset.tsv', DATASET_COLUMNS, dataset_rows)]:
            lines = [ '\t'.join(columns) ] + [ '\t'.join([ str(row.get(c, '')) for c in columns ]) for row in rows ]
            (tmp_path / filename).write_text('\n'.join(lines) + '\n', encoding='utf-8')
        return str(tmp_path / 'datapackage.json')
    return write
