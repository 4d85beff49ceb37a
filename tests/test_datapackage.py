from unittest.mock import patch, MagicMock

import pytest

from px_packager.exception import InvalidDatapackage, IncompatibleDatapackageModel
from px_packager.datapackage import (
    PxInputDataPackage, JobInfo, input_schema_json, load_input_package, raw_file_paths,
)


JOBS = [
    {'job_id': 100, 'dataset_name': 'Dataset_A', 'dataset_id': 1, 'tool_name': 'MSGFPlus_MzML',
     'result_type': 'MSG_Peptide_Hit', 'instrument_group': 'QExactive', 'instrument_name': 'QExactHF03',
     'organism_id': 1639, 'organism_name': 'Shewanella oneidensis MR-1', 'split_count': 0,
     'searched_mzml': 'true', 'results_directory': 'results/Job100'},
    {'job_id': 200, 'dataset_name': 'Dataset_A', 'dataset_id': 1, 'tool_name': 'XTandem',
     'result_type': 'XT_Peptide_Hit', 'searched_mzml': 'false'},
    {'job_id': 100, 'dataset_name': 'Dataset_Dup', 'dataset_id': 9, 'tool_name': 'XTandem',
     'result_type': 'XT_Peptide_Hit'},
]
DATASETS = [
    {'dataset_id': 1, 'dataset_name': 'Dataset_A', 'raw_file_path': '\\\\proto-2\\Dataset_A\\Dataset_A.raw'},
    {'dataset_id': 2, 'dataset_name': 'Dataset_B', 'tissue_id': 'BTO:0000142', 'tissue_name': 'brain',
     'dataset_directory': 'datasets/Dataset_B'},
]


@pytest.fixture
def skip_frictionless(monkeypatch):
    monkeypatch.setenv('PXPKG_SKIP_FRICTIONLESS', 'true')


def test_builtin_descriptor():
    package = PxInputDataPackage(input_schema_json)
    assert 'job_id' in package.field_names('job')
    assert 'tissue_id' in package.field_names('dataset')
    assert package.field_names('missing') == []


def test_rejects_bad_filename_type():
    with pytest.raises(TypeError):
        PxInputDataPackage(42)


def test_load_input_package(write_package, tmp_path, skip_frictionless):
    packagefile = write_package(JOBS, DATASETS)
    jobs, datasets = load_input_package(packagefile)

    assert [ job.job_id for job in jobs ] == [100, 200]
    assert jobs[0].dataset_name == 'Dataset_A'
    assert jobs[0].dataset_id == 1
    assert jobs[0].is_msgfplus
    assert jobs[0].searched_mzml is True
    assert jobs[0].results_directory == str(tmp_path / 'results/Job100')
    assert not jobs[1].is_msgfplus
    assert jobs[1].searched_mzml is False
    assert jobs[1].organism_id == 0

    assert list(datasets.keys()) == [1, 2]
    assert datasets[1].raw_file_path == '\\\\proto-2\\Dataset_A\\Dataset_A.raw'
    assert datasets[2].tissue_id == 'BTO:0000142'
    assert datasets[2].dataset_directory == str(tmp_path / 'datasets/Dataset_B')
    assert raw_file_paths(datasets) == {'Dataset_A': '\\\\proto-2\\Dataset_A\\Dataset_A.raw'}


def test_missing_package_file(tmp_path):
    with pytest.raises(InvalidDatapackage):
        load_input_package(str(tmp_path / 'nope.json'))


def test_unreadable_descriptor(tmp_path):
    path = tmp_path / 'datapackage.json'
    path.write_text('{ not json', encoding='utf-8')
    with pytest.raises(InvalidDatapackage):
        PxInputDataPackage(str(path))


def test_missing_resource(write_package, tmp_path, skip_frictionless):
    packagefile = write_package(JOBS, DATASETS, drop_resource='dataset')
    with pytest.raises(IncompatibleDatapackageModel, match='dataset'):
        load_input_package(packagefile)


def test_missing_field(write_package, tmp_path, skip_frictionless):
    packagefile = write_package(JOBS, DATASETS, drop_field='tool_name')
    with pytest.raises(IncompatibleDatapackageModel, match='tool_name'):
        load_input_package(packagefile)


def test_frictionless_errors_reported(write_package, monkeypatch):
    monkeypatch.delenv('PXPKG_SKIP_FRICTIONLESS', raising=False)
    packagefile = write_package(JOBS, DATASETS)
    report = MagicMock()
    report.valid = False
    report.flatten.return_value = [['Row at position "4" violates the unique constraint'], ['second']]
    with patch('px_packager.datapackage.frictionless.validate', return_value=report) as validate:
        with pytest.raises(InvalidDatapackage, match='Found 2 errors'):
            load_input_package(packagefile)
    validate.assert_called_once_with(packagefile)


def test_job_from_row_defaults():
    job = JobInfo.from_row({'job_id': '7', 'dataset_name': ' DS '})
    assert job.job_id == 7
    assert job.dataset_name == 'DS'
    assert job.split_count == 0
    assert job.results_directory == ''
    assert not job.is_msgfplus
