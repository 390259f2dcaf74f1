from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from facematch.core import model_loader
from facematch.core.model_loader import (
    CAFFEMODEL,
    MODEL_FILES,
    PROTOTXT,
    ModelLoadFailure,
    ModelRegistry,
    ModelSource,
    default_sources,
    fetch_source,
    load_models,
)


def test_default_sources_try_local_first(tmp_path: Path):
    sources = default_sources(str(tmp_path))
    assert [s.remote for s in sources] == [False, True, True]
    assert sources[0].files[PROTOTXT] == os.path.join(str(tmp_path), PROTOTXT)
    for source in sources[1:]:
        assert set(source.files) == set(MODEL_FILES)
        assert all(url.startswith("https://") for url in source.files.values())


def test_fetch_local_source(tmp_path: Path):
    source = default_sources(str(tmp_path))[0]
    with pytest.raises(FileNotFoundError):
        fetch_source(source, str(tmp_path))

    for name in MODEL_FILES:
        (tmp_path / name).write_bytes(b"weights")
    paths = fetch_source(source, str(tmp_path))
    assert paths == {name: str(tmp_path / name) for name in MODEL_FILES}


def test_fetch_remote_source_caches_into_model_dir(tmp_path: Path, monkeypatch):
    downloaded = []

    def fake_download(url, filename):
        downloaded.append(url)
        Path(filename).write_bytes(b"weights")

    monkeypatch.setattr(model_loader, "download_file", fake_download)
    model_dir = tmp_path / "models"
    source = ModelSource(name="mirror", files={PROTOTXT: "https://a/p", CAFFEMODEL: "https://a/c"}, remote=True)

    paths = fetch_source(source, str(model_dir))
    assert downloaded == ["https://a/p", "https://a/c"]
    assert all(Path(p).parent == model_dir for p in paths.values())
    # the local source now resolves
    assert fetch_source(default_sources(str(model_dir))[0], str(model_dir)) == paths


def test_incomplete_source_is_rejected(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        fetch_source(ModelSource(name="half", files={PROTOTXT: "x"}), str(tmp_path))


def test_load_models_falls_back_in_order(tmp_path: Path):
    attempted = []
    detector = object()

    def loader(source, model_dir):
        attempted.append(source.name)
        if source.name == "second":
            return detector
        raise OSError(f"{source.name} unreachable")

    sources = [ModelSource(name=n) for n in ("first", "second", "third")]
    name, loaded = asyncio.run(load_models(sources, str(tmp_path), loader))
    assert (name, loaded) == ("second", detector)
    assert attempted == ["first", "second"]


def test_load_models_raises_when_every_source_fails(tmp_path: Path):
    def loader(source, model_dir):
        raise OSError("offline")

    with pytest.raises(ModelLoadFailure):
        asyncio.run(load_models([ModelSource(name="a"), ModelSource(name="b")], str(tmp_path), loader))


def test_registry_records_failure_and_recovers(tmp_path: Path):
    state = {"online": False}
    detector = object()

    def loader(source, model_dir):
        if not state["online"]:
            raise OSError("offline")
        return detector

    registry = ModelRegistry(str(tmp_path), sources=[ModelSource(name="only")], loader=loader)
    assert asyncio.run(registry.load()) is False
    assert registry.status()["loaded"] is False
    assert "every source" in registry.status()["error"]

    state["online"] = True
    assert asyncio.run(registry.load()) is True
    assert registry.status() == {"loaded": True, "source": "only", "error": None}
    assert registry.detector is detector
