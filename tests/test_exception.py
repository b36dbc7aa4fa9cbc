import pytest
from cinelog.service import CineLogService, ValidationError, NotFoundError
from cinelog.codec import ImportFormatError, parse_import
from cinelog.repo import InMemoryRepo, STORAGE_KEY, load_records

@pytest.fixture
def svc():
    s = CineLogService(InMemoryRepo(), save_delay=60)
    yield s
    s.saver.cancel()

def test_add_record_requires_title(svc):
    with pytest.raises(ValidationError, match="title required"):
        svc.add_record({"title": "   "})

@pytest.mark.parametrize("rating", [-1, 5.5, "abc"])
def test_add_record_rejects_bad_rating(svc, rating):
    with pytest.raises(ValidationError, match="rating must be"):
        svc.add_record({"title": "X", "rating": rating})

def test_add_record_rejects_unknown_status(svc):
    with pytest.raises(ValidationError, match="status must be one of"):
        svc.add_record({"title": "X", "status": "finished"})

def test_add_record_rejects_unknown_media_type(svc):
    with pytest.raises(ValidationError, match="mediaType"):
        svc.add_record({"title": "X", "mediaType": "book"})

@pytest.mark.parametrize("episodes", [-1, 2.5, "many"])
def test_add_series_rejects_bad_episode_count(svc, episodes):
    with pytest.raises(ValidationError, match="currentEpisode"):
        svc.add_record({"title": "X", "mediaType": "tv", "currentEpisode": episodes})

def test_bad_watched_date(svc):
    with pytest.raises(ValidationError, match="watchedDate"):
        svc.add_record({"title": "X", "watchedDate": "05/03/2024"})

def test_update_missing_record(svc):
    with pytest.raises(NotFoundError, match="record not found"):
        svc.update_record("nope", {"title": "X"})

def test_delete_missing_record(svc):
    with pytest.raises(NotFoundError):
        svc.delete_record("nope", confirm=True)

def test_bulk_delete_without_confirmation(svc):
    r = svc.add_record({"title": "Keep"})
    with pytest.raises(ValidationError, match="requires confirmation"):
        svc.bulk_delete([r.id])
    assert len(svc.records) == 1

def test_export_unknown_format(svc):
    with pytest.raises(ValidationError, match="format must be"):
        svc.export("xml")

@pytest.mark.parametrize("filename, content, message", [
    ("backup.json", '{"id": "1"}', "must be a list"),
    ("backup.json", "[1, 2]", "must be a list"),
    ("backup.json", "{not json", "invalid JSON"),
    ("backup.txt", "ID,标题\n1,x\n", "unsupported file type"),
])
def test_import_file_level_errors(filename, content, message):
    with pytest.raises(ImportFormatError, match=message):
        parse_import(filename, content)

def test_failed_import_does_not_mutate(svc):
    svc.add_record({"title": "Existing"})
    with pytest.raises(ImportFormatError):
        svc.import_file("backup.json", '{"oops": true}')
    assert [r.title for r in svc.records] == ["Existing"]

@pytest.mark.parametrize("blob", ["{broken", '{"a": 1}', "[1, 2]"])
def test_malformed_persisted_state_loads_empty(blob):
    repo = InMemoryRepo()
    repo.set(STORAGE_KEY, blob)
    assert load_records(repo) == []
    assert CineLogService(repo, save_delay=60).records == []
