import json
from pathlib import Path

import numpy as np
import pytest

from cli.main import main
from digitscanner.core.network import FNN
from digitscanner.data.cache import TEST_IMAGES, TEST_LABELS, build_fixture
from digitscanner.data.idx import write_images, write_labels
from digitscanner.persistence import load_network
from digitscanner.scanner import CANVAS_SIZE, DigitScanner


def test_cli_offline_preset(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DIGITSCANNER_CACHE_DIR", str(tmp_path / "cache"))
    main(["--preset", "offline-smoke", "--train-imgnb", "100", "--train-epochs", "1", "--time"])
    run_dir = Path("runs/offline-smoke")
    assert (run_dir / "metrics.jsonl").exists()
    assert (run_dir / "metrics.csv").exists()
    assert (run_dir / "manifest.json").exists()
    lines = capsys.readouterr().out.strip().splitlines()
    assert lines[0].endswith(" %")
    assert lines[1].endswith(" s")


def test_cli_train_save_then_test_loaded_model(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    mnist = build_fixture(tmp_path / "mnist")
    main([
        "--layers", "784", "10", "10",
        "--mnist", str(mnist),
        "--train", "--train-imgnb", "50", "--train-epochs", "1",
        "--fnnout", "model.txt",
        "--seed", "3",
    ])
    assert capsys.readouterr().out == ""
    assert load_network("model.txt").layers == [784, 10, 10]

    main(["--fnnin", "model.txt", "--mnist", str(mnist), "--test", "--test-imgnb", "20"])
    out = capsys.readouterr().out.strip()
    assert out.endswith(" %")
    assert 0.0 <= float(out.split()[0]) <= 100.0


def test_cli_dump_config(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DIGITSCANNER_CACHE_DIR", str(tmp_path / "cache"))
    override = tmp_path / "override.json"
    override.write_text(json.dumps({"train": {"epochs": 1, "nb_images": 30}, "test": {"nb_images": 10}}))
    main([
        "--preset", "offline-smoke",
        "--config", str(override),
        "--train-eta", "0.25",
        "--dump-config", "resolved.json",
    ])
    resolved = json.loads(Path("resolved.json").read_text())
    assert resolved["train"]["epochs"] == 1
    assert resolved["train"]["eta"] == 0.25
    assert resolved["train"]["batch_len"] == 10
    assert resolved["test"]["nb_images"] == 10


def test_cli_list_presets(capsys):
    with pytest.raises(SystemExit) as excinfo:
        main(["--list-presets"])
    assert excinfo.value.code == 0
    assert "offline-smoke" in capsys.readouterr().out.split()


def test_cli_reports_missing_dataset(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    with pytest.raises(SystemExit) as excinfo:
        main(["--layers", "784", "10", "--mnist", str(tmp_path / "nowhere"), "--test"])
    assert "not found" in str(excinfo.value.code)


def test_cli_reports_bad_model_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    Path("broken.txt").write_text("2\n784\n")
    with pytest.raises(SystemExit) as excinfo:
        main(["--fnnin", "broken.txt"])
    assert str(excinfo.value.code).startswith("error:")


def test_scratchpad_guess():
    scanner = DigitScanner([784, 10], seed=0)
    for j in range(4, 24):
        scanner.scan(6, j, 300)
        scanner.scan(6, j, 10)
    assert scanner.scratchpad.pixels[6, 10] == 255
    digit, output = scanner.guess()
    assert 0 <= digit < 10
    assert output.shape == (10, 1)
    scanner.reset()
    assert not scanner.scratchpad.pixels.any()
    with pytest.raises(IndexError):
        scanner.scan(CANVAS_SIZE, 0, 1)


def test_scanner_requires_a_network():
    with pytest.raises(RuntimeError):
        DigitScanner().guess()


def _tiny_test_set(directory: Path, count: int = 10000) -> Path:
    # 2x2 images keep the default 10000-image test window fast.
    labels = np.arange(count, dtype=np.uint8) % 10
    images = np.zeros((count, 2, 2), dtype=np.uint8)
    images[:, 0, 0] = labels * 20
    write_images(directory / TEST_IMAGES, images)
    write_labels(directory / TEST_LABELS, labels)
    return directory


def test_cli_bare_test_flag_uses_default_window(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    mnist = _tiny_test_set(tmp_path / "mnist")
    main(["--layers", "4", "10", "--mnist", str(mnist), "--test"])
    out = capsys.readouterr().out.strip()
    assert out.endswith(" %")
    assert 0.0 <= float(out.split()[0]) <= 100.0


def test_cli_bare_train_flag_runs_training(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    mnist = build_fixture(tmp_path / "mnist")
    # The default window asks for 60000 training images; the fixture has 600.
    with pytest.raises(SystemExit) as excinfo:
        main(["--layers", "784", "10", "--mnist", str(mnist), "--train", "--fnnout", "m.txt"])
    assert "60000" in str(excinfo.value.code)
    assert not Path("m.txt").exists()


def test_cli_train_changes_saved_parameters(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    mnist = build_fixture(tmp_path / "mnist")
    main([
        "--layers", "784", "10", "--mnist", str(mnist),
        "--train", "--train-imgnb", "20", "--train-epochs", "1",
        "--fnnout", "m.txt", "--seed", "1",
    ])
    saved = load_network("m.txt").fully_connected_layer(0).W.to_array()
    initial = FNN([784, 10], seed=1).fully_connected_layer(0).W.to_array()
    assert not np.array_equal(saved, initial)


def test_cli_reports_unwritable_model_path(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    Path("blocker").write_text("")
    with pytest.raises(SystemExit) as excinfo:
        main(["--layers", "4", "2", "--fnnout", "blocker/model.txt"])
    assert str(excinfo.value.code).startswith("error:")
