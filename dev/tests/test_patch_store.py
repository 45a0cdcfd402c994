from __future__ import annotations

from dataclasses import replace

import pytest

from patchrepo.exceptions import DuplicateEntityError, InvalidEntityError, NotFoundError
from patchrepo.patching import AuditEvent, PatchSet, PatchSetStatus, PatchStatus


def test_create_patch_set(store):
    created = store.create("UnlockFeature", description="Unlocks pro", author="alice")

    assert created.id
    assert created.status == PatchSetStatus.DRAFT
    assert created.patches == ()
    assert store.get(created.id) == created
    assert len(created.audit_log) == 1
    entry = created.audit_log[0]
    assert entry.event == AuditEvent.CREATED
    assert entry.details == "Patch set UnlockFeature created"
    assert entry.metadata == {"patchSetID": created.id}


def test_create_rejects_blank_name(store):
    with pytest.raises(InvalidEntityError):
        store.create("   ")
    assert store.list_all() == []


def test_add_duplicate_id_leaves_cache_unchanged(store):
    first = store.create("First")
    second = store.create("Second")
    before = {s.id: s for s in store.list_all()}

    clone = PatchSet.new("Impostor")
    clone = replace(clone, id=first.id)
    with pytest.raises(DuplicateEntityError):
        store.add(clone)

    after = {s.id: s for s in store.list_all()}
    assert after == before
    assert store.get(first.id).name == "First"
    assert store.get(second.id).name == "Second"


def test_unlock_feature_scenario(store, storage_dir, make_patch):
    from patchrepo.patching import PatchSetStorage, PatchStore

    patch_set = store.create("UnlockFeature")
    p1 = make_patch(name="P1", offset=0x1000, original=bytes([0x00, 0x01]), patched=bytes([0x01, 0x00]))

    store.add_patch(p1, patch_set.id)
    current = store.get(patch_set.id)
    assert len(current.patches) == 1
    assert len(current.audit_log) == 2
    assert [e.event for e in current.audit_log] == [AuditEvent.CREATED, AuditEvent.CREATED]
    assert current.audit_log[1].patch_id == p1.id

    store.set_patch_status(PatchStatus.VERIFIED, p1.id, patch_set.id, message="ok")
    current = store.get(patch_set.id)
    assert current.patches[0].status == PatchStatus.VERIFIED
    assert current.patches[0].verification_message == "ok"
    assert len(current.audit_log) == 3
    assert current.audit_log[-1].metadata["message"] == "ok"
    assert current.audit_log[-1].details == "Patch P1 status changed to verified"

    store.delete_patch(p1.id, patch_set.id)
    current = store.get(patch_set.id)
    assert len(current.patches) == 0
    assert len(current.audit_log) == 4
    last = current.audit_log[-1]
    assert last.event == AuditEvent.DELETED
    assert last.patch_id == p1.id
    assert last.details == "Patch P1 deleted"
    assert last.metadata == {"patchSetID": patch_set.id, "patchID": p1.id}

    reloaded = PatchStore(PatchSetStorage(storage_dir))
    reloaded.load_all()
    assert reloaded.get(patch_set.id) == current


def test_add_patch_is_listed_once(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch()
    store.add_patch(patch, patch_set.id)

    ids = [p.id for p in store.get(patch_set.id).patches]
    assert ids.count(patch.id) == 1


def test_add_patch_errors(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch()

    with pytest.raises(NotFoundError):
        store.add_patch(patch, "missing")

    store.add_patch(patch, patch_set.id)
    with pytest.raises(DuplicateEntityError):
        store.add_patch(patch, patch_set.id)

    with pytest.raises(InvalidEntityError):
        store.add_patch(make_patch(original=b"\x00", patched=b"\x00\x01"), patch_set.id)

    assert len(store.get(patch_set.id).patches) == 1
    assert len(store.get(patch_set.id).audit_log) == 2


def test_add_patch_checks_target_identity(store, make_patch):
    patch_set = store.create("Set")
    store.update(replace(store.get(patch_set.id), target_uuid="1111", target_architecture="arm64"))

    with pytest.raises(InvalidEntityError) as exc_info:
        store.add_patch(make_patch(expected_uuid="2222"), patch_set.id)
    assert exc_info.value.reason == "Patch target UUID mismatch"

    with pytest.raises(InvalidEntityError) as exc_info:
        store.add_patch(make_patch(expected_architecture="arm64e"), patch_set.id)
    assert exc_info.value.reason == "Patch target architecture mismatch"

    store.add_patch(make_patch(expected_uuid="1111", expected_architecture="arm64"), patch_set.id)


def test_update_replaces_set_and_keeps_history(store):
    created = store.create("Original")

    edited = replace(
        created,
        name="Renamed",
        description="new text",
        tags=("ios",),
        audit_log=(),
        created_at=created.created_at.replace(year=2000),
    )
    updated = store.update(edited)

    assert updated.name == "Renamed"
    assert updated.description == "new text"
    assert updated.tags == ("ios",)
    assert updated.created_at == created.created_at
    assert updated.updated_at > created.updated_at
    assert updated.audit_log[0] == created.audit_log[0]
    assert updated.audit_log[-1].event == AuditEvent.UPDATED
    assert updated.audit_log[-1].details == "Patch set Renamed updated"
    assert store.get(created.id) == updated


def test_update_missing_set(store):
    with pytest.raises(NotFoundError):
        store.update(PatchSet.new("Ghost"))


def test_update_validates(store):
    created = store.create("Valid")
    with pytest.raises(InvalidEntityError):
        store.update(replace(created, name=""))
    assert store.get(created.id) == created


def test_delete_set(store, storage_dir):
    created = store.create("Doomed")
    assert (storage_dir / f"{created.id}.json").exists()

    store.delete(created.id)

    assert store.get(created.id) is None
    assert not (storage_dir / f"{created.id}.json").exists()
    with pytest.raises(NotFoundError):
        store.delete(created.id)


def test_update_patch_in_place(store, make_patch):
    patch_set = store.create("Set")
    first = make_patch(name="first")
    second = make_patch(name="second", offset=0x2000)
    store.add_patch(first, patch_set.id)
    store.add_patch(second, patch_set.id)

    store.update_patch(replace(first, name="first v2", patched_bytes=b"\x02\x02"), patch_set.id)

    current = store.get(patch_set.id)
    assert [p.name for p in current.patches] == ["first v2", "second"]
    assert current.patches[0].patched_bytes == b"\x02\x02"
    assert current.audit_log[-1].details == "Patch first v2 updated"


def test_update_patch_errors(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch()

    with pytest.raises(NotFoundError):
        store.update_patch(patch, patch_set.id)
    with pytest.raises(NotFoundError):
        store.update_patch(patch, "missing")

    store.add_patch(patch, patch_set.id)
    with pytest.raises(InvalidEntityError):
        store.update_patch(replace(patch, original_bytes=b""), patch_set.id)
    assert store.get(patch_set.id).patches[0] == patch


def test_delete_patch_errors(store, make_patch):
    patch_set = store.create("Set")
    with pytest.raises(NotFoundError):
        store.delete_patch("nope", patch_set.id)
    with pytest.raises(NotFoundError):
        store.delete_patch("nope", "missing")


def test_set_patch_enabled_noop_when_unchanged(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch()
    store.add_patch(patch, patch_set.id)
    before = store.get(patch_set.id)

    result = store.set_patch_enabled(True, patch.id, patch_set.id)

    assert result == before
    after = store.get(patch_set.id)
    assert after.updated_at == before.updated_at
    assert len(after.audit_log) == len(before.audit_log)


def test_set_patch_enabled_toggles_and_audits_user(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch(name="Jailbreak check")
    store.add_patch(patch, patch_set.id)
    before = store.get(patch_set.id)

    store.set_patch_enabled(False, patch.id, patch_set.id, user="bob")

    after = store.get(patch_set.id)
    assert after.patches[0].enabled is False
    assert after.patches[0].updated_at > patch.updated_at
    assert after.updated_at > before.updated_at
    entry = after.audit_log[-1]
    assert entry.event == AuditEvent.UPDATED
    assert entry.details == "Patch Jailbreak check disabled"
    assert entry.user == "bob"
    assert entry.patch_id == patch.id

    store.set_patch_enabled(True, patch.id, patch_set.id)
    assert store.get(patch_set.id).audit_log[-1].details == "Patch Jailbreak check enabled"


def test_set_patch_status_is_unconditional(store, make_patch):
    patch_set = store.create("Set")
    patch = make_patch()
    store.add_patch(patch, patch_set.id)

    store.set_patch_status("pending", patch.id, patch_set.id)
    current = store.get(patch_set.id)
    assert len(current.audit_log) == 3
    assert "message" not in current.audit_log[-1].metadata
    assert current.patches[0].verification_message is None

    store.set_patch_status(PatchStatus.FAILED, patch.id, patch_set.id, message="bytes differ")
    store.set_patch_status(PatchStatus.APPLIED, patch.id, patch_set.id)
    current = store.get(patch_set.id)
    assert current.patches[0].status == PatchStatus.APPLIED
    assert current.patches[0].verification_message is None
    assert len(current.audit_log) == 5


def test_set_patch_set_status_noop_rules(store):
    created = store.create("Set")

    assert store.set_patch_set_status(PatchSetStatus.DRAFT, created.id) == created
    assert len(store.get(created.id).audit_log) == 1

    store.set_patch_set_status(PatchSetStatus.DRAFT, created.id, message="still drafting")
    current = store.get(created.id)
    assert len(current.audit_log) == 2
    assert current.audit_log[-1].metadata["message"] == "still drafting"

    store.set_patch_set_status("ready", created.id)
    current = store.get(created.id)
    assert current.status == PatchSetStatus.READY
    assert current.audit_log[-1].details == "Patch set Set status changed to ready"
    assert len(current.audit_log) == 3

    with pytest.raises(NotFoundError):
        store.set_patch_set_status(PatchSetStatus.READY, "missing")


def test_list_all_newest_first(store):
    a = store.create("A")
    b = store.create("B")
    assert [s.id for s in store.list_all()] == [b.id, a.id]

    store.set_patch_set_status(PatchSetStatus.READY, a.id)
    assert [s.id for s in store.list_all()] == [a.id, b.id]


def test_search_patch_sets(store):
    ios = store.create("iOS Unlock", description="Pro features")
    store.update(replace(store.get(ios.id), tags=("Jailbreak",)))
    store.create("Android tweak")

    assert store.search_patch_sets("") == []
    assert [s.id for s in store.search_patch_sets("unlock")] == [ios.id]
    assert [s.id for s in store.search_patch_sets("PRO")] == [ios.id]
    assert [s.id for s in store.search_patch_sets("jailb")] == [ios.id]
    assert len(store.search_patch_sets("t")) == 2
    assert len(store.search_patch_sets("t", limit=1)) == 1


def test_search_patch_sets_sorted_before_truncation(store):
    older = store.create("match one")
    newer = store.create("match two")
    store.set_patch_set_status(PatchSetStatus.READY, older.id)

    assert [s.id for s in store.search_patch_sets("match", limit=1)] == [older.id]
    assert [s.id for s in store.search_patch_sets("match")] == [older.id, newer.id]


def test_search_patches(store, make_patch):
    patch_set = store.create("Set")
    p1 = make_patch(name="Skip jailbreak check", tags=("security",))
    p2 = make_patch(name="Disable logging", description="Silence NSLog")
    p3 = make_patch(name="Force premium", tags=("Unlock",))
    for patch in (p1, p2, p3):
        store.add_patch(patch, patch_set.id)

    assert store.search_patches("") == []
    assert [p.id for p in store.search_patches("JAILBREAK")] == [p1.id]
    assert [p.id for p in store.search_patches("nslog")] == [p2.id]
    assert [p.id for p in store.search_patches("unlock")] == [p3.id]
    assert [p.id for p in store.search_patches("e")] == [p1.id, p2.id, p3.id]
    assert [p.id for p in store.search_patches("e", limit=2)] == [p1.id, p2.id]


def test_recent_audit(store, make_patch):
    a = store.create("A")
    b = store.create("B")
    store.add_patch(make_patch(), a.id)

    entries = store.recent_audit()
    assert len(entries) == 3
    assert [e.timestamp for e in entries] == sorted((e.timestamp for e in entries), reverse=True)
    assert entries[0].metadata["patchSetID"] == a.id
    assert entries[1].metadata["patchSetID"] == b.id
    assert len(store.recent_audit(limit=2)) == 2


def test_statistics(store, make_patch):
    a = store.create("A")
    b = store.create("B")
    p1 = make_patch()
    p2 = make_patch()
    p3 = make_patch(enabled=False)
    store.add_patch(p1, a.id)
    store.add_patch(p2, a.id)
    store.add_patch(p3, b.id)
    store.set_patch_status(PatchStatus.VERIFIED, p1.id, a.id)

    stats = store.statistics()
    assert stats.total_patch_sets == 2
    assert stats.total_patches == 3
    assert stats.enabled_patches == 2
    assert stats.verified_patches == 1
    assert stats.to_dict() == {
        "totalPatchSets": 2,
        "totalPatches": 3,
        "enabledPatches": 2,
        "verifiedPatches": 1,
    }


def test_find_by_target_normalizes_paths(store):
    target = store.create("Target")
    store.update(replace(store.get(target.id), target_path="/a/./b/bin"))
    other = store.create("Other")
    store.update(replace(store.get(other.id), target_path="/a/b/other"))
    store.create("No target")

    assert [s.id for s in store.find_by_target("/a/b/bin")] == [target.id]
    assert [s.id for s in store.find_by_target("/a/c/../b/bin")] == [target.id]
    assert store.find_by_target("/a/b") == []


def test_find_by_target_relative_paths(store, tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    target = store.create("Relative")
    store.update(replace(store.get(target.id), target_path="./a/b"))

    assert [s.id for s in store.find_by_target("a/b")] == [target.id]
    assert [s.id for s in store.find_by_target("a/b/../b/")] == [target.id]


def test_returned_audit_entries_cannot_be_rewritten(store, storage_dir):
    from patchrepo.patching import PatchSetStorage, PatchStore

    created = store.create("Sealed")
    entry = store.get(created.id).audit_log[0]

    with pytest.raises(TypeError):
        entry.metadata["patchSetID"] = "forged"
    with pytest.raises(TypeError):
        entry.metadata["extra"] = "x"

    reloaded = PatchStore(PatchSetStorage(storage_dir))
    assert reloaded.get(created.id) == store.get(created.id)
    assert store.get(created.id).audit_log[0].metadata == {"patchSetID": created.id}


def test_caller_tag_lists_are_not_aliased(store, storage_dir, make_patch):
    from patchrepo.patching import PatchSetStorage, PatchStore

    patch_set = store.create("Tagged")
    tags = ["a"]
    patch = make_patch(tags=tags)
    store.add_patch(patch, patch_set.id)
    set_tags = ["x"]
    store.update(replace(store.get(patch_set.id), tags=set_tags))

    tags.append("leaked")
    set_tags.append("leaked")

    cached = store.get(patch_set.id)
    assert cached.patches[0].tags == ("a",)
    assert cached.tags == ("x",)
    reloaded = PatchStore(PatchSetStorage(storage_dir))
    assert reloaded.get(patch_set.id) == cached


def test_default_limits_come_from_the_store(storage_dir, make_patch):
    from patchrepo.patching import PatchSetStorage, PatchStore

    store = PatchStore(
        PatchSetStorage(storage_dir),
        patch_search_limit=1,
        patch_set_search_limit=1,
        audit_limit=2,
    )
    first = store.create("match one")
    store.create("match two")
    store.add_patch(make_patch(name="match a"), first.id)
    store.add_patch(make_patch(name="match b"), first.id)

    assert len(store.search_patches("match")) == 1
    assert len(store.search_patch_sets("match")) == 1
    assert len(store.recent_audit()) == 2
    assert len(store.recent_audit(limit=10)) == 4
    assert len(store.search_patches("match", limit=5)) == 2
    store.close()
