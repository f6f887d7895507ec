import pytest

from roomhub.uploads import UploadStore, sanitize_filename


@pytest.mark.parametrize(
    "name,expected",
    [
        ("cat.png", "cat.png"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\notes.txt", "notes.txt"),
        ("my holiday photo.jpg", "my_holiday_photo.jpg"),
        ("...", "file"),
        ("", "file"),
    ],
)
def test_sanitize_filename(name, expected) -> None:
    assert sanitize_filename(name) == expected


def test_save_writes_blob_and_returns_file_url(tmp_path) -> None:
    store = UploadStore(str(tmp_path / "uploads"))

    url = store.save("cat.png", b"meow")

    assert url.startswith("file://")
    assert url.endswith("-cat.png")
    (stored,) = (tmp_path / "uploads").iterdir()
    assert stored.read_bytes() == b"meow"


def test_save_never_overwrites(tmp_path) -> None:
    store = UploadStore(str(tmp_path))

    first = store.save("a.txt", b"1")
    second = store.save("a.txt", b"2")

    assert first != second
    assert sorted(p.read_bytes() for p in tmp_path.iterdir()) == [b"1", b"2"]


def test_base_url_prefix(tmp_path) -> None:
    store = UploadStore(str(tmp_path), base_url="https://files.example.org/u/")

    url = store.save("report.pdf", b"%PDF")

    assert url.startswith("https://files.example.org/u/")
    assert url.endswith("-report.pdf")
