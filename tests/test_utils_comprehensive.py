"""Test suite for the utils modules.

Covers:
- Color predicates (tolerance, no uint8 wrap-around, stdev, brightness)
- Atomic file I/O (bytes, YAML, images)
- Hashing (files, arrays, dicts)
- Metrics (well painted fraction, MAE, PSNR)
- Profiler timer
- Logging idempotency, context fields and JSON output

Run with: pytest tests/test_utils_comprehensive.py -v
"""

import json
import logging
import logging.handlers

import numpy as np
import pytest
import torch

from oilpaint.utils import (
    color,
    fs,
    hashing,
    logging_config,
    metrics,
    profiler,
)


# ============================================================================
# FIXTURES
# ============================================================================

@pytest.fixture
def restore_logging():
    """Undo setup_logging() side effects after the test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
    logging_config.pop_context()
    logging.captureWarnings(False)


@pytest.fixture
def red():
    img = np.empty((8, 8, 3), dtype=np.uint8)
    img[...] = (200, 50, 50)
    return img


# ============================================================================
# COLOR TESTS
# ============================================================================

def test_channel_difference_no_wraparound():
    a = np.array([10, 0, 255], dtype=np.uint8)
    b = np.array([250, 255, 0], dtype=np.uint8)
    assert list(color.channel_difference(a, b)) == [240, 255, 255]


def test_within_color_difference_per_channel():
    a = np.array([[100, 100, 100], [100, 100, 100]], dtype=np.uint8)
    b = np.array([[120, 80, 100], [100, 100, 131]], dtype=np.uint8)
    result = color.within_color_difference(a, b, (20, 20, 30))
    assert list(result) == [True, False]


def test_mean_channel_distance():
    a = np.array([[0, 0, 0]], dtype=np.uint8)
    b = np.array([[30, 60, 90]], dtype=np.uint8)
    assert color.mean_channel_distance(a, b) == pytest.approx(60.0)
    assert color.mean_channel_distance(np.empty((0, 3)), np.empty((0, 3))) == 0.0


def test_channel_stdev():
    colors = np.array([[0, 10, 5], [100, 10, 5]], dtype=np.uint8)
    assert np.allclose(color.channel_stdev(colors), [50.0, 0.0, 0.0])
    assert np.allclose(color.channel_stdev(np.empty((0, 3))), 0.0)


def test_scale_brightness_clips():
    scaled = color.scale_brightness(np.array([200.0, 100.0, 0.0]), np.array([0.5, 2.0]))
    assert scaled.shape == (2, 3)
    assert np.allclose(scaled[0], [100.0, 50.0, 0.0])
    assert np.allclose(scaled[1], [255.0, 200.0, 0.0])


def test_scale_brightness_stacked_rows():
    """Factors apply per row across every leading axis."""
    colors = np.full((4, 2, 3), 100.0)
    scaled = color.scale_brightness(colors, np.array([0.5, 3.0]))
    assert scaled.shape == (4, 2, 3)
    assert np.allclose(scaled[:, 0], 50.0)
    assert np.allclose(scaled[:, 1], 255.0)


def test_to_rgb_tuple():
    rgb = color.to_rgb_tuple(np.array([1, 2, 3], dtype=np.uint8))
    assert rgb == (1, 2, 3)
    assert all(type(c) is int for c in rgb)


# ============================================================================
# FILESYSTEM TESTS
# ============================================================================

def test_ensure_dir(tmp_path):
    path = fs.ensure_dir(tmp_path / "a" / "b")
    assert path.is_dir()
    assert fs.ensure_dir(path) == path


def test_atomic_write_bytes(tmp_path):
    target = tmp_path / "sub" / "data.bin"
    fs.atomic_write_bytes(target, b"abc")
    assert target.read_bytes() == b"abc"
    fs.atomic_write_text(target, "replaced")
    assert target.read_text() == "replaced"
    assert not list(target.parent.glob("*.tmp"))


def test_yaml_roundtrip(tmp_path):
    data = {'b': 1, 'a': [1, 2, 3], 'nested': {'x': 0.5}}
    path = tmp_path / "data.yaml"
    fs.atomic_yaml_dump(data, path)
    assert fs.load_yaml(path) == data
    # Insertion order kept
    assert path.read_text().startswith("b: 1")


def test_load_yaml_empty_and_missing(tmp_path):
    empty = tmp_path / "empty.yaml"
    empty.write_text("")
    assert fs.load_yaml(empty) == {}
    with pytest.raises(FileNotFoundError):
        fs.load_yaml(tmp_path / "missing.yaml")


def test_image_roundtrip(tmp_path, red):
    path = tmp_path / "img" / "red.png"
    fs.atomic_save_image(red, path)
    loaded = fs.load_image(path)
    assert loaded.dtype == np.uint8
    assert np.array_equal(loaded, red)
    assert not list(path.parent.glob("*.tmp*"))


def test_save_gray_and_float_images(tmp_path):
    gray = np.full((4, 5), 77, dtype=np.uint8)
    fs.atomic_save_image(gray, tmp_path / "gray.png")
    assert np.all(fs.load_image(tmp_path / "gray.png") == 77)

    floats = np.full((4, 5, 3), 300.0)
    fs.atomic_save_image(floats, tmp_path / "clipped.png")
    assert np.all(fs.load_image(tmp_path / "clipped.png") == 255)


def test_load_image_missing(tmp_path):
    with pytest.raises(FileNotFoundError):
        fs.load_image(tmp_path / "missing.png")


# ============================================================================
# HASHING TESTS
# ============================================================================

def test_sha256_file(tmp_path):
    path = tmp_path / "f.bin"
    path.write_bytes(b"hello")
    assert hashing.sha256_file(path) == hashing.sha256_string("hello")
    with pytest.raises(FileNotFoundError):
        hashing.sha256_file(tmp_path / "missing")


def test_sha256_array_includes_dtype_and_shape():
    a = np.zeros((2, 3), dtype=np.uint8)
    assert hashing.sha256_array(a) == hashing.sha256_array(a.copy())
    assert hashing.sha256_array(a) != hashing.sha256_array(a.reshape(3, 2))
    assert hashing.sha256_array(a) != hashing.sha256_array(a.astype(np.int8))
    # Non-contiguous views hash by value
    b = np.arange(12, dtype=np.uint8).reshape(3, 4)
    assert hashing.sha256_array(b[:, ::2]) == hashing.sha256_array(b[:, ::2].copy())


def test_hash_dict_order_independent():
    assert hashing.hash_dict({'a': 1, 'b': (1, 2)}) == hashing.hash_dict({'b': [1, 2], 'a': 1})
    assert hashing.hash_dict({'a': 1}) != hashing.hash_dict({'a': 2})


# ============================================================================
# METRICS TESTS
# ============================================================================

def test_well_painted_fraction(red):
    painted = np.full_like(red, 255)
    painted[:4] = red[:4]
    assert metrics.well_painted_fraction(painted, red, (40, 40, 40)) == pytest.approx(0.5)
    assert metrics.well_painted_fraction(red, red, (0, 0, 0)) == pytest.approx(1.0)


def test_metrics_accept_read_only_and_tensors(red):
    red.flags.writeable = False
    assert metrics.mean_absolute_error(red, red) == 0.0
    assert metrics.well_painted_fraction(torch.from_numpy(red.copy()), red, (1, 1, 1)) == 1.0


def test_mean_absolute_error(red):
    other = red.copy()
    other[...] = (210, 50, 20)
    assert metrics.mean_absolute_error(other, red) == pytest.approx(40.0 / 3)


def test_psnr(red):
    noisy = red.copy()
    noisy[0, 0, 0] += 10
    assert metrics.psnr(red, red) > 100
    assert 30 < metrics.psnr(noisy, red) < 100


def test_metrics_shape_mismatch(red):
    with pytest.raises(ValueError, match="Shape mismatch"):
        metrics.psnr(red, red[:4])
    with pytest.raises(ValueError, match="Shape mismatch"):
        metrics.well_painted_fraction(red, red[:, :4], (1, 1, 1))


# ============================================================================
# PROFILER TESTS
# ============================================================================

def test_timer_sink():
    timings = {}
    with profiler.timer("block", sink=timings.__setitem__):
        sum(range(1000))
    assert timings['block'] >= 0.0


def test_timer_reports_on_exception():
    timings = {}
    with pytest.raises(RuntimeError):
        with profiler.timer("failing", sink=timings.__setitem__):
            raise RuntimeError("boom")
    assert 'failing' in timings


def test_timer_logs_without_sink(caplog):
    caplog.set_level(logging.DEBUG, logger="oilpaint.utils.profiler")
    with profiler.timer("quiet"):
        pass
    assert any(r.getMessage().startswith("quiet:") for r in caplog.records)


# ============================================================================
# LOGGING TESTS
# ============================================================================

def test_setup_logging_idempotent(restore_logging, tmp_path):
    log_file = tmp_path / "logs" / "paint.log"
    first = logging_config.setup_logging("INFO", str(log_file))
    second = logging_config.setup_logging("INFO", str(log_file))

    root = logging.getLogger()
    for handler in first['handlers']:
        assert handler not in root.handlers
    for handler in second['handlers']:
        assert handler in root.handlers
    assert len(second['handlers']) == 2


def test_context_fields_in_output(restore_logging, tmp_path):
    log_file = tmp_path / "paint.log"
    logging_config.setup_logging("DEBUG", str(log_file), to_stderr=False, context={'app': 'paint'})
    logging_config.push_context(image="portrait.png")

    logging_config.get_logger("oilpaint.test").info("Trace painted")
    for handler in logging.getLogger().handlers:
        handler.flush()

    line = log_file.read_text().strip().splitlines()[-1]
    assert "app=paint" in line
    assert "image=portrait.png" in line
    assert "Trace painted" in line

    logging_config.pop_context(["image"])
    assert logging_config.get_context() == {'app': 'paint'}


def test_json_file_output(restore_logging, tmp_path):
    log_file = tmp_path / "paint.jsonl"
    logging_config.setup_logging("INFO", str(log_file), json=True, to_stderr=False)
    logging_config.push_context(run="r1")
    logging_config.get_logger("oilpaint.test").warning("Brush size reduced")
    for handler in logging.getLogger().handlers:
        handler.flush()

    record = json.loads(log_file.read_text().strip().splitlines()[-1])
    assert record['lvl'] == "WARNING"
    assert record['msg'] == "Brush size reduced"
    assert record['run'] == "r1"


def test_size_rotation_handler(restore_logging, tmp_path):
    result = logging_config.setup_logging(
        "INFO", str(tmp_path / "rot.log"), to_stderr=False,
        rotate={'mode': 'size', 'max_bytes': 1000, 'backup_count': 2}
    )
    assert isinstance(result['handlers'][0], logging.handlers.RotatingFileHandler)

    with pytest.raises(ValueError, match="rotation mode"):
        logging_config.setup_logging(
            "INFO", str(tmp_path / "bad.log"), to_stderr=False, rotate={'mode': 'weekly'}
        )


def test_set_level(restore_logging):
    logging_config.setup_logging("INFO", to_stderr=False)
    logging_config.set_level("debug")
    assert logging.getLogger().level == logging.DEBUG


def test_log_context_restores_fields(restore_logging):
    logging_config.push_context(app="paint")
    with logging_config.log_context(job="portrait", app="override"):
        assert logging_config.get_context() == {'app': 'override', 'job': 'portrait'}
    assert logging_config.get_context() == {'app': 'paint'}

    with pytest.raises(RuntimeError):
        with logging_config.log_context(job="failing"):
            raise RuntimeError("boom")
    assert 'job' not in logging_config.get_context()


def test_unknown_level_rejected(restore_logging):
    with pytest.raises(ValueError, match="log level"):
        logging_config.setup_logging("LOUD", to_stderr=False)


def test_timer_yields_timing():
    with profiler.timer("refresh") as timing:
        sum(range(1000))
    assert timing.name == "refresh"
    assert timing.elapsed > 0.0
