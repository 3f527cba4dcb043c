import asyncio

from app.utils.config import Settings
from domains.image_transcription.errors import (
    CollisionFailure,
    ConversionFailure,
    NoteCreationFailure,
    TranscriptionFailure,
)
from domains.image_transcription.job import JobStatus
from domains.image_transcription.paths import VaultPath


def notices(harness, level):
    return [n["message"] for n in harness.notifier.recent() if n["level"] == level]


def test_new_image_is_moved_transcribed_and_recorded(harness):
    harness.write("Notes/a.jpg", b"jpeg-data")

    [job] = harness.process("Notes/a.jpg")

    assert job.status is JobStatus.DONE
    assert job.working_file == VaultPath("Notes/Images/a.jpg")
    assert not (harness.root / "Notes" / "a.jpg").exists()
    assert (harness.root / "Notes" / "Images" / "a.jpg").read_bytes() == b"jpeg-data"

    note = harness.root / "Notes" / "Meeting notes.md"
    assert note.is_file()
    content = note.read_text(encoding="utf-8")
    assert content.startswith("# Meeting notes")
    assert "![[Notes/Images/a.jpg]]" in content

    assert harness.history.contains(VaultPath("Notes/Images/a.jpg"))
    assert harness.provider.calls == 1
    assert harness.provider.images == [b"jpeg-data"]
    assert harness.provider.media_types == ["image/jpeg"]
    assert notices(harness, "info")[0] == "Processing a.jpg..."
    assert "Note created: Meeting notes" in notices(harness, "success")


def test_readmitting_processed_image_after_restart_skips_transcription(make_harness):
    first = make_harness()
    first.write("Notes/a.jpg")
    first.process("Notes/a.jpg")
    assert first.provider.calls == 1

    # Fresh collaborators reading the same state file
    restarted = make_harness()
    [job] = restarted.process("Notes/Images/a.jpg")

    assert job.status is JobStatus.DONE
    assert restarted.provider.calls == 0
    assert restarted.notes.calls == 0
    assert sorted(p.name for p in (restarted.root / "Notes").glob("*.md")) == ["Meeting notes.md"]


def test_history_hit_skips_provider_and_notes(harness):
    asyncio.run(harness.history.add(VaultPath("Notes/Images/b.jpg")))
    harness.write("Notes/b.jpg")

    [job] = harness.process("Notes/b.jpg")

    assert job.status is JobStatus.DONE
    assert (harness.root / "Notes" / "Images" / "b.jpg").exists()
    assert harness.provider.calls == 0
    assert harness.notes.calls == 0
    assert list((harness.root / "Notes").glob("*.md")) == []


def test_collision_leaves_source_untouched(harness):
    harness.write("Notes/c.jpg", b"new")
    harness.write("Notes/Images/c.jpg", b"existing")

    [job] = harness.process("Notes/c.jpg")

    assert job.status is JobStatus.ERROR
    assert job.error.startswith(CollisionFailure.reason)
    assert (harness.root / "Notes" / "c.jpg").read_bytes() == b"new"
    assert (harness.root / "Notes" / "Images" / "c.jpg").read_bytes() == b"existing"
    assert harness.provider.calls == 0
    assert len(notices(harness, "error")) == 1
    assert notices(harness, "error")[0].startswith("Error: Failed to process c.jpg")


def test_compression_failure_is_not_terminal(make_harness):
    for result in ("fail", "raise"):
        harness = make_harness(compression=result)
        harness.write(f"{result}/d.jpg")

        [job] = harness.process(f"{result}/d.jpg")

        assert job.status is JobStatus.DONE
        assert harness.compressor.calls == 1
        assert harness.provider.calls == 1


def test_heic_is_converted_before_moving(harness):
    harness.write("Photos/p.heic", b"heic-data")

    [job] = harness.process("Photos/p.heic")

    assert job.status is JobStatus.DONE
    assert job.initial_file == VaultPath("Photos/p.heic")
    assert job.working_file == VaultPath("Photos/Images/p.jpg")
    assert (harness.root / "Photos" / "Images" / "p.jpg").exists()
    # The original HEIC stays where it was dropped
    assert (harness.root / "Photos" / "p.heic").exists()
    assert harness.history.contains(VaultPath("Photos/Images/p.jpg"))


def test_conversion_failure(make_harness):
    harness = make_harness(converter_fail=True)
    harness.write("Photos/p.heic")

    [job] = harness.process("Photos/p.heic")

    assert job.status is JobStatus.ERROR
    assert job.error == ConversionFailure.reason
    assert harness.provider.calls == 0


def test_transcription_failure_keeps_moved_image(make_harness):
    harness = make_harness(transcript=None)
    harness.write("Notes/e.png")

    [job] = harness.process("Notes/e.png")

    assert job.status is JobStatus.ERROR
    assert job.error == TranscriptionFailure.reason
    assert (harness.root / "Notes" / "Images" / "e.png").exists()
    assert harness.provider.media_types == ["image/png"]
    assert not harness.history.contains(VaultPath("Notes/Images/e.png"))
    assert harness.notes.calls == 0


def test_blank_transcription_is_a_failure(make_harness):
    harness = make_harness(transcript="   \n")
    harness.write("f.jpg")

    [job] = harness.process("f.jpg")

    assert job.error == TranscriptionFailure.reason


def test_note_failure_does_not_record_history(make_harness):
    harness = make_harness(notes_fail=True)
    harness.write("Notes/g.jpg")

    [job] = harness.process("Notes/g.jpg")

    assert job.status is JobStatus.ERROR
    assert job.error == NoteCreationFailure.reason
    assert not harness.history.contains(VaultPath("Notes/Images/g.jpg"))


def test_history_write_failure_is_internal_error(harness, monkeypatch):
    async def broken_add(path):
        raise OSError("state file locked")

    monkeypatch.setattr(harness.history, "add", broken_add)
    harness.write("h.jpg")

    [job] = harness.process("h.jpg")

    assert job.status is JobStatus.ERROR
    assert job.error == "unexpected processing error: state file locked"
    assert len(notices(harness, "error")) == 1


def test_image_already_in_image_folder_is_not_moved(harness):
    harness.write("Notes/Images/i.jpg")

    [job] = harness.process("Notes/Images/i.jpg")

    assert job.status is JobStatus.DONE
    assert job.working_file == VaultPath("Notes/Images/i.jpg")
    assert (harness.root / "Notes" / "Meeting notes.md").exists()
    assert not (harness.root / "Notes" / "Images" / "Images").exists()


def test_fixed_destinations(make_harness, vault, tmp_path):
    settings = Settings(
        vault_root=vault,
        state_file=tmp_path / "state.json",
        image_destination="fixed",
        image_fixed_folder="Attachments",
        note_destination="fixed",
        note_fixed_folder="Inbox/Transcripts",
    )
    harness = make_harness(settings=settings)
    harness.write("Journal/j.jpg")

    [job] = harness.process("Journal/j.jpg")

    assert job.status is JobStatus.DONE
    assert (vault / "Attachments" / "j.jpg").exists()
    note = vault / "Inbox" / "Transcripts" / "Meeting notes.md"
    assert "![[Attachments/j.jpg]]" in note.read_text(encoding="utf-8")


def test_same_title_gets_unique_note_names(harness):
    harness.write("Notes/k1.jpg")
    harness.write("Notes/k2.jpg")

    jobs = harness.process("Notes/k1.jpg", "Notes/k2.jpg")

    assert [job.status for job in jobs] == [JobStatus.DONE, JobStatus.DONE]
    names = sorted(p.name for p in (harness.root / "Notes").glob("*.md"))
    assert names == ["Meeting notes.md", "Meeting notes_1.md"]


def test_missing_file_is_not_admitted(harness):
    assert harness.process("Notes/missing.jpg") == [None]
