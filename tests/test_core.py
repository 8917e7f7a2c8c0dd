import io
import os

import pytest

from copyright_registry.core.utils import (
    file_extension, format_file_size, new_id, remove_file, resolve_track_path, store_track_file
)


def test_new_id_unique():
    ids = {new_id() for _ in range(5)}
    assert len(ids) == 5


def test_file_extension_is_lowercased():
    assert file_extension("Song.MP3") == ".mp3"
    assert file_extension("no_extension") == ""
    assert file_extension("") == ""


def test_store_track_file(tmp_path):
    filename = store_track_file(io.BytesIO(b"hello"), "take1.WAV", str(tmp_path))

    assert filename.endswith(".wav")
    assert (tmp_path / filename).read_bytes() == b"hello"


def test_resolve_track_path(tmp_path):
    path = resolve_track_path("abc.mp3", str(tmp_path))
    assert path == os.path.join(str(tmp_path.resolve()), "abc.mp3")


@pytest.mark.parametrize("filename", ["../outside.mp3", "/etc/passwd"])
def test_resolve_track_path_rejects_escaping_names(tmp_path, filename):
    with pytest.raises(ValueError):
        resolve_track_path(filename, str(tmp_path))


def test_remove_file(tmp_path):
    path = tmp_path / "gone.mp3"
    path.write_bytes(b"x")

    assert remove_file(str(path)) is True
    assert not path.exists()
    assert remove_file(str(path)) is False


@pytest.mark.parametrize("size, expected", [
    (0, "0 B"),
    (512, "512.0 B"),
    (2048, "2.0 KB"),
    (20 * 1024 * 1024, "20.0 MB"),
])
def test_format_file_size(size, expected):
    assert format_file_size(size) == expected
