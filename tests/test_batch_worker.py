import threading

import pytest
from PIL import Image

from photomark.batch_worker import (
    ExportJob, ExportWorker, NamingMode, NamingRule, ScaleMode, ScalePolicy, run_export, summary_text
)
from photomark.errors import ConfigConflict, FailureReason
from photomark.exporter import OutputFormat
from photomark.image_io import FileSource, collect_sources
from photomark.settings import TextStyle, WatermarkSpec

SPEC = WatermarkSpec(text=TextStyle(text="wm", font_family="DejaVu Sans", font_size=24, opacity=1.0))
VIEWPORT = (400, 300)


def test_naming_rules():
    lossy = OutputFormat.jpeg(0.9)
    lossless = OutputFormat.png()
    assert NamingRule.add_suffix("_wm").filename("photo", lossy) == "photo_wm.jpg"
    assert NamingRule.add_prefix("wm_").filename("photo", lossless) == "wm_photo.png"
    assert NamingRule.keep_original().filename("photo", lossless) == "photo.png"
    assert NamingRule().mode is NamingMode.ADD_SUFFIX


def test_suffix_rule_on_jpg_source(make_image):
    source = FileSource(make_image("photo.jpg", fmt="JPEG"))
    assert NamingRule.add_suffix("_wm").filename(source.stem, OutputFormat.jpeg()) == "photo_wm.jpg"


@pytest.mark.parametrize("policy, expected", [
    (ScalePolicy(), (1000, 500)),
    (ScalePolicy(ScaleMode.BY_WIDTH, 400), (400, 200)),
    (ScalePolicy(ScaleMode.BY_HEIGHT, 100), (200, 100)),
    (ScalePolicy(ScaleMode.BY_PERCENTAGE, 50), (500, 250)),
    (ScalePolicy(ScaleMode.BY_PERCENTAGE, 1), (10, 5)),
])
def test_scale_policy(policy, expected):
    assert policy.output_size((1000, 500)) == expected


def test_scale_policy_rejects_non_positive():
    with pytest.raises(ValueError):
        ScalePolicy(ScaleMode.BY_WIDTH, 0)


def test_config_conflict_aborts_before_any_work(make_image, tmp_path):
    path = make_image("a.png")
    job = ExportJob([FileSource(path)], tmp_path, naming=NamingRule.keep_original())
    calls = []
    with pytest.raises(ConfigConflict):
        run_export(job, SPEC, VIEWPORT, progress_callback=lambda *a: calls.append(a))
    assert calls == []
    assert sorted(p.name for p in tmp_path.iterdir()) == ["a.png"]


def test_keep_original_into_other_folder_is_allowed(make_image, tmp_path):
    path = make_image("a.png", folder="src")
    job = ExportJob([FileSource(path)], tmp_path / "out", naming=NamingRule.keep_original())
    results = run_export(job, SPEC, VIEWPORT)
    assert [r.ok for r in results] == [True]
    assert (tmp_path / "out" / "a.png").exists()


def test_corrupt_source_does_not_abort_batch(make_image, tmp_path):
    first = make_image("one.png", folder="src")
    second = tmp_path / "src" / "two.jpg"
    second.write_bytes(b"this is not a jpeg")
    third = make_image("three.jpg", fmt="JPEG", folder="src")
    out = tmp_path / "out"

    job = ExportJob(
        [FileSource(first), FileSource(second), FileSource(third)],
        out,
        naming=NamingRule.add_suffix("_wm"),
        output_format=OutputFormat.jpeg(0.8),
    )
    results = run_export(job, SPEC, VIEWPORT)

    assert len(results) == 3
    assert [r.ok for r in results] == [True, False, True]
    assert results[1].reason is FailureReason.DECODE
    assert summary_text(results) == "2 / 3"
    assert sorted(p.name for p in out.iterdir()) == ["one_wm.jpg", "three_wm.jpg"]
    assert results[0].bytes_written == (out / "one_wm.jpg").stat().st_size
    assert results[0].output_path == out / "one_wm.jpg"


def test_output_is_resized_and_decodable(make_image, tmp_path):
    path = make_image("big.png", size=(800, 400), folder="src")
    job = ExportJob(
        [FileSource(path)], tmp_path / "out",
        scale=ScalePolicy(ScaleMode.BY_WIDTH, 200),
        naming=NamingRule.add_prefix("wm_"),
    )
    [result] = run_export(job, SPEC, VIEWPORT)
    assert result.ok
    with Image.open(result.output_path) as img:
        assert img.format == "PNG"
        assert img.size == (200, 100)


def test_write_failure_is_recorded(make_image, tmp_path):
    path = make_image("a.png", folder="src")
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("file in the way")
    job = ExportJob([FileSource(path)], blocker)
    [result] = run_export(job, SPEC, VIEWPORT)
    assert not result.ok
    assert result.reason in (FailureReason.WRITE, FailureReason.PERMISSION)


def test_missing_source_is_a_failure(tmp_path):
    job = ExportJob([FileSource(tmp_path / "gone.png")], tmp_path / "out")
    [result] = run_export(job, SPEC, VIEWPORT)
    assert not result.ok
    assert result.reason is FailureReason.DECODE


def test_results_keep_input_order(make_image, tmp_path):
    names = ["c.png", "a.png", "b.png"]
    sources = [FileSource(make_image(n, folder="src")) for n in names]
    results = run_export(ExportJob(sources, tmp_path / "out"), SPEC, VIEWPORT)
    assert [r.source.name for r in results] == names


def test_cancel_stops_before_next_source(make_image, tmp_path):
    sources = [FileSource(make_image(f"{i}.png", folder="src")) for i in range(3)]
    cancel = threading.Event()
    job = ExportJob(sources, tmp_path / "out")

    results = run_export(job, SPEC, VIEWPORT, progress_callback=lambda *a: cancel.set(), cancel_event=cancel)
    assert len(results) == 1
    assert results[0].ok
    assert summary_text(results, total=3) == "1 / 3"


def test_export_worker_runs_in_background(make_image, tmp_path):
    sources = collect_sources([make_image("x.png", folder="src").parent])
    progress = []
    worker = ExportWorker(
        ExportJob(sources, tmp_path / "out"), SPEC, VIEWPORT,
        progress_callback=lambda idx, total, result: progress.append((idx, total, result.ok)),
    )
    future = worker.start()
    results = worker.result(timeout=60)
    assert future.done()
    assert [r.ok for r in results] == [True]
    assert progress == [(1, 1, True)]


def test_export_worker_requires_start():
    worker = ExportWorker(ExportJob([], "out"), SPEC, VIEWPORT)
    with pytest.raises(RuntimeError):
        worker.result()
