"""Tests for halftone_cli."""
import json
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

from config_manager import ConfigManager
from halftone_cli import (ConfigValidationError, detect_mode, load_config, main, process_folder,
                          process_single_image, validate_config)
from module_registry import build_algorithm, create_default_registry


@pytest.fixture
def registry():
    return create_default_registry()


@pytest.fixture
def workspace(tmp_path):
    """A gradient input image next to a job file location."""
    row = np.linspace(0, 255, 24).astype(np.uint8)
    Image.fromarray(np.tile(row, (16, 1))).save(tmp_path / 'input.png')
    return tmp_path


def write_job(directory: Path, job: dict) -> Path:
    path = directory / 'job.json'
    path.write_text(json.dumps(job))
    return path


def run_main(argv):
    with pytest.raises(SystemExit) as excinfo:
        main(argv)
    return excinfo.value.code


# -------------------- Validation --------------------

def test_missing_fields_are_collected(registry, tmp_path):
    with pytest.raises(ConfigValidationError) as excinfo:
        validate_config({'mode': 'video'}, tmp_path / 'job.json', registry)
    message = str(excinfo.value)
    assert "'input'" in message
    assert "'output'" in message
    assert "Invalid mode" in message


def test_unknown_module_type(registry, workspace):
    job = {'input': 'input.png', 'output': 'out.png',
           'algorithm': {'method': {'type': 'voronoi'}}}
    with pytest.raises(ConfigValidationError, match='voronoi'):
        validate_config(job, workspace / 'job.json', registry)


def test_unknown_parameter(registry, workspace):
    job = {'input': 'input.png', 'output': 'out.png',
           'algorithm': {'method': {'type': 'sfc_clustering', 'cell': 3}}}
    with pytest.raises(ConfigValidationError, match='cell'):
        validate_config(job, workspace / 'job.json', registry)


def test_bilevel_must_be_bool(registry, workspace):
    job = {'input': 'input.png', 'output': 'out.png', 'bilevel': 'yes'}
    with pytest.raises(ConfigValidationError, match='bilevel'):
        validate_config(job, workspace / 'job.json', registry)


def test_paths_resolve_against_job_file(registry, workspace):
    job = validate_config({'input': 'input.png', 'output': 'out/result.png'},
                          workspace / 'job.json', registry)
    assert job['input'] == str((workspace / 'input.png').resolve())
    assert job['output'] == str((workspace / 'out' / 'result.png').resolve())
    assert job['mode'] is None
    assert job['bilevel'] is False


def test_missing_input(registry, tmp_path):
    with pytest.raises(ConfigValidationError, match='not found'):
        validate_config({'input': 'nope.png', 'output': 'out.png'}, tmp_path / 'job.json', registry)


def test_default_algorithm_from_preferences(registry, workspace):
    preferences = ConfigManager(str(workspace / 'prefs.json'))
    job = validate_config({'input': 'input.png', 'output': 'out.png'},
                          workspace / 'job.json', registry, preferences)
    assert job['algorithm']['method']['error_filter']['type'] == 'matrix_error'


def test_load_config_invalid_json(registry, tmp_path):
    path = tmp_path / 'job.json'
    path.write_text('{"input": ')
    with pytest.raises(ConfigValidationError, match='Invalid JSON'):
        load_config(path, registry)


def test_detect_mode(workspace):
    assert detect_mode(workspace) == 'folder'
    assert detect_mode(workspace / 'input.png') == 'image'
    with pytest.raises(ConfigValidationError):
        detect_mode(workspace / 'notes.txt')


# -------------------- Entry Point --------------------

def test_main_halftones_image(workspace):
    job = write_job(workspace, {
        'input': 'input.png',
        'output': 'result.png',
        'algorithm': {'method': {'type': 'threshold',
                                 'error_filter': {'type': 'matrix_error', 'matrix': 'stucki'}}},
    })
    assert run_main([str(job), '-q']) == 0
    with Image.open(workspace / 'result.png') as result:
        assert result.size == (24, 16)
        assert set(np.unique(np.array(result)).tolist()) <= {0, 255}


def test_main_bilevel_output(workspace):
    job = write_job(workspace, {
        'input': 'input.png',
        'output': 'result.png',
        'bilevel': True,
        'algorithm': {'method': {'type': 'sfc_clustering'}},
    })
    assert run_main([str(job), '-q']) == 0
    with Image.open(workspace / 'result.png') as result:
        assert result.mode == '1'


def test_main_folder_mode(workspace):
    images = workspace / 'images'
    images.mkdir()
    for name in ('a.png', 'b.png'):
        Image.new('L', (5, 5), 90).save(images / name)
    (images / 'readme.txt').write_text('not an image')
    job = write_job(workspace, {'input': 'images', 'output': 'halftoned'})
    assert run_main([str(job), '-q']) == 0
    assert sorted(p.name for p in (workspace / 'halftoned').iterdir()) == ['a.png', 'b.png']


def test_main_records_preferences(workspace):
    prefs = workspace / 'prefs.json'
    job = write_job(workspace, {'input': 'input.png', 'output': 'result.png'})
    assert run_main([str(job), '-q', '--preferences', str(prefs)]) == 0
    saved = json.loads(prefs.read_text())
    assert saved['recent_files'] == [str(job.resolve())]
    assert saved['paths']['last_output_dir'] == str(workspace.resolve())


def test_main_invalid_job(workspace):
    job = write_job(workspace, {'input': 'input.png'})
    assert run_main([str(job), '-q']) == 1


def test_main_missing_job_file(tmp_path):
    assert run_main([str(tmp_path / 'missing.json'), '-q']) == 1


def test_main_without_job_file():
    assert run_main(['-q']) == 1


@pytest.mark.parametrize("flag", ['--help', '--example-config', '--list-modules'])
def test_main_informational_flags(flag, capsys):
    assert run_main([flag]) == 0
    assert capsys.readouterr().out


def test_process_single_image_unreadable(tmp_path):
    broken = tmp_path / 'broken.png'
    broken.write_bytes(b'not an image')
    algorithm = build_algorithm(create_default_registry(), {})
    assert not process_single_image(algorithm, broken, tmp_path / 'out.png', show_progress=False)
    assert not (tmp_path / 'out.png').exists()


def test_folder_with_unreadable_image_fails(workspace):
    images = workspace / 'images'
    images.mkdir()
    Image.new('L', (4, 4), 200).save(images / 'good.png')
    (images / 'bad.png').write_bytes(b'not an image')
    algorithm = build_algorithm(create_default_registry(), {})
    assert not process_folder(algorithm, images, workspace / 'out', show_progress=False)
    assert (workspace / 'out' / 'good.png').exists()
