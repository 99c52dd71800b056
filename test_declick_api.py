import numpy as np
import pytest
import soundfile as sf

import click_probe
import declick
from declick import Params
from declick_api import measure_rms_dbfs, process_audio


SR = 8000


def _stereo_with_click():
    k = np.arange(2048, dtype=np.float32)
    tone = (0.05 * np.sin(2.0 * np.pi * 8.0 * k / 2048.0)).astype(np.float32)
    left = tone.copy()
    left[500] = 0.9
    return np.stack([left, tone], axis=1)


def test_process_audio_mono_keeps_shape():
    x = _stereo_with_click()[:, 0]
    y, info = process_audio(x, SR)
    assert y.shape == x.shape
    assert info["channels"] == 1
    assert info["per_channel"][0]["detected"] == 1
    assert info["per_channel"][0]["click_times_s"] == [pytest.approx(500 / SR)]
    assert info["params"] == {
        "target_peak": 0.95,
        "impulse_threshold_multiplier": 6.0,
        "impulse_abs_min": 0.25,
        "diff_threshold": 0.2,
    }
    assert "normalized" not in info


def test_process_audio_channels_are_independent():
    x = _stereo_with_click()
    y, info = process_audio(x, SR, params=Params(), keep_normalized=True)
    assert y.shape == x.shape
    assert [c["detected"] for c in info["per_channel"]] == [1, 0]
    assert info["normalized"].shape == x.shape

    removed = info["normalized"] - y
    assert np.flatnonzero(removed[:, 0]).tolist() == [500]
    assert not np.any(removed[:, 1])
    assert info["measure_out"]["sample_peak_dbfs"] == pytest.approx(20.0 * np.log10(0.95), abs=1e-3)


def test_process_audio_rejects_bad_input():
    with pytest.raises(ValueError):
        process_audio(np.zeros(4, dtype=np.float32), 0)
    with pytest.raises(ValueError):
        process_audio(np.zeros((2, 2, 2), dtype=np.float32), SR)


def test_process_audio_empty():
    y, info = process_audio(np.zeros(0, dtype=np.float32), SR)
    assert y.shape == (0,)
    assert info["per_channel"][0]["detected"] == 0
    assert info["duration_s"] == 0.0


def test_measure_rms_dbfs_of_full_scale_square():
    x = np.array([1.0, -1.0, 1.0, -1.0], dtype=np.float32)
    assert measure_rms_dbfs(x) == pytest.approx(0.0, abs=1e-6)


def test_cli_writes_output_and_diff(tmp_path, capsys):
    src = tmp_path / "in.wav"
    dst = tmp_path / "out.wav"
    diff = tmp_path / "diff.wav"
    sf.write(str(src), _stereo_with_click(), SR, subtype="FLOAT")

    rc = declick.main([str(src), str(dst), "--write-diff", str(diff), "--subtype", "FLOAT", "--debug"])
    assert rc == 0

    y, sr = sf.read(str(dst), always_2d=True, dtype="float32")
    d, _ = sf.read(str(diff), always_2d=True, dtype="float32")
    assert sr == SR
    assert y.shape == (2048, 2)
    assert np.flatnonzero(d[:, 0]).tolist() == [500]
    assert "=== Debug summary ===" in capsys.readouterr().out


def test_probe_writes_plots_and_artifact(tmp_path, capsys):
    src = tmp_path / "in.wav"
    outdir = tmp_path / "probe"
    sf.write(str(src), _stereo_with_click(), SR, subtype="FLOAT")

    rc = click_probe.main([str(src), "--outdir", str(outdir), "--t0", "0.05", "--dur", "0.1"])
    assert rc == 0
    for name in ("artifact.wav", "roi_waveform.png", "roi_spectrogram.png"):
        assert (outdir / name).stat().st_size > 0
    assert "(sample 500)" in capsys.readouterr().out

    a, _ = sf.read(str(outdir / "artifact.wav"), dtype="float32")
    assert a.shape == (800,)


def test_probe_rejects_missing_channel(tmp_path):
    src = tmp_path / "in.wav"
    sf.write(str(src), _stereo_with_click()[:, 0], SR, subtype="FLOAT")
    with pytest.raises(SystemExit):
        click_probe.main([str(src), "--outdir", str(tmp_path / "p"), "--channel", "3"])


def test_roi_bounds_are_clamped():
    assert click_probe.roi_bounds(100, 10, -1.0, 100.0) == (0, 100)
    assert click_probe.roi_bounds(100, 10, 50.0, 1.0) == (100, 100)
