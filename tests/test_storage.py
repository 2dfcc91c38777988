import json

import pytest

from heirlooms.errors import PersistenceFailure
from heirlooms.storage import KeyedLease, atomic_write_json, safe_key


def test_atomic_write_leaves_no_temp_files(tmp_path):
    target = tmp_path / "nested" / "record.json"
    atomic_write_json(target, {"title": "Café chair"})
    atomic_write_json(target, {"title": "Rocking chair"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"title": "Rocking chair"}
    assert [p.name for p in target.parent.iterdir()] == ["record.json"]


def test_safe_key_strips_path_components():
    assert safe_key("../../etc/passwd") == "passwd"
    assert safe_key("a b/c?d") == "c_d"


class TestKeyedLease:
    def test_second_acquire_fails_until_release(self, tmp_path):
        lease = KeyedLease(tmp_path / "locks")
        assert lease.try_acquire("artifact-1")
        assert not lease.try_acquire("artifact-1")
        assert lease.try_acquire("artifact-2")

        lease.release("artifact-1")
        assert lease.try_acquire("artifact-1")

    def test_separate_instances_exclude_each_other(self, tmp_path):
        first = KeyedLease(tmp_path / "locks")
        second = KeyedLease(tmp_path / "locks")

        with first.hold("artifact-1") as acquired:
            assert acquired
            with second.hold("artifact-1") as other:
                assert not other
            assert second.is_held("artifact-1") is False

        with second.hold("artifact-1") as acquired:
            assert acquired

    def test_release_of_unheld_key_is_noop(self, tmp_path):
        lease = KeyedLease(tmp_path / "locks")
        lease.release("never-held")
        assert not lease.is_held("never-held")

    def test_unusable_lock_dir_is_persistence_failure(self, tmp_path):
        blocked = tmp_path / "locks"
        blocked.write_text("not a directory", encoding="utf-8")
        lease = KeyedLease(blocked)

        with pytest.raises(PersistenceFailure) as excinfo:
            lease.try_acquire("artifact-1")
        assert excinfo.value.message.startswith("Failed to acquire analysis lock")
        assert not lease.is_held("artifact-1")

    def test_discard_removes_lock_file(self, tmp_path):
        lease = KeyedLease(tmp_path / "locks")
        with lease.hold("artifact-1"):
            pass
        assert (tmp_path / "locks" / "artifact-1.lock").exists()

        assert lease.discard("artifact-1")
        assert not (tmp_path / "locks" / "artifact-1.lock").exists()
        assert not lease.discard("artifact-1")

    def test_discard_leaves_held_lock(self, tmp_path):
        holder = KeyedLease(tmp_path / "locks")
        other = KeyedLease(tmp_path / "locks")
        with holder.hold("artifact-1"):
            assert not other.discard("artifact-1")
            assert (tmp_path / "locks" / "artifact-1.lock").exists()
