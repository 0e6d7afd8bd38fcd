from listing_walker.kv_store import JsonFileStore
from listing_walker.main import main
from listing_walker.resilience.block_detector import BlockDetector
from listing_walker.resilience.progress_tracker import ProgressTracker
from test_progress_tracker import make_progress


def test_status_without_job(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    assert main(["--state-dir", str(tmp_path / "state"), "status"]) == 0
    out = capsys.readouterr().out
    assert "State:       idle" in out


def test_resume_and_cancel(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    state_dir = tmp_path / "state"
    store = JsonFileStore(state_dir)
    ProgressTracker(store).persist(make_progress())
    BlockDetector(store).raise_block("test")

    assert main(["--state-dir", str(state_dir), "status"]) == 0
    assert "State:       blocked" in capsys.readouterr().out

    assert main(["--state-dir", str(state_dir), "resume"]) == 0
    assert not BlockDetector(JsonFileStore(state_dir)).is_blocked()

    assert main(["--state-dir", str(state_dir), "cancel"]) == 0
    assert "Job cancelled" in capsys.readouterr().out
    assert ProgressTracker(JsonFileStore(state_dir)).load() is None


def test_invalid_job_file(tmp_path, monkeypatch, capsys):
    monkeypatch.chdir(tmp_path)
    job = tmp_path / "job.json"
    job.write_text('{"id": "j", "token": "t", "config": {"url": "nope"}}', encoding="utf-8")
    assert main(["--state-dir", str(tmp_path / "state"), "start", "--job", str(job)]) == 1
    assert "Invalid job" in capsys.readouterr().out
