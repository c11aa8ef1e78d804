import threading
import time

from lyceum.core.enums import ItemKind
from lyceum.services.concurrency_manager import ConcurrencyManager, submission_key


def test_lock_is_exclusive_per_key():
    manager = ConcurrencyManager()
    key = submission_key("s1", ItemKind.EXAM, "e1")
    inside = []
    overlaps = []

    def work(name):
        with manager.lock(key, name):
            inside.append(name)
            if len(inside) > 1:
                overlaps.append(tuple(inside))
            time.sleep(0.01)
            inside.remove(name)

    threads = [threading.Thread(target=work, args=(f"w{i}",)) for i in range(5)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    assert overlaps == []
    assert not manager.is_locked(key)


def test_unrelated_keys_do_not_block():
    manager = ConcurrencyManager()
    held = threading.Event()
    release = threading.Event()

    def hold():
        with manager.lock("progress:s1:c1"):
            held.set()
            release.wait(2)

    thread = threading.Thread(target=hold)
    thread.start()
    held.wait(2)
    with manager.lock("progress:s2:c1", "other"):
        assert manager.is_locked("progress:s1:c1")
    release.set()
    thread.join()


def test_lock_info_and_reentry():
    manager = ConcurrencyManager()
    with manager.lock("course:c1", "holder") as outer:
        with manager.lock("course:c1", "holder"):
            assert len(manager.get_lock_info("course:c1")) == 2
        assert [info.lock_id for info in manager.get_holder_locks("holder")] == [outer]
    assert not manager.is_locked("course:c1")
    assert manager.release_lock("unknown") is False
