"""Tests for restore reconciliation."""

from datetime import timedelta

import pytest

from farm_backup import (
    BackupFile,
    RestoreInProgressError,
    RestoreMode,
    RestoreReconciler,
    RestoreRun,
    RunDone,
)
from farm_backup.core.codec import datetime_to_millis, millis_to_datetime
from farm_backup.core.registry import invitation_token

from conftest import EXPORT_MS, FARM_ID, FIXED_NOW, OPERATOR_ID, FlakyStore, seed_store


@pytest.fixture
def reconciler(store, config, clock):
    return RestoreReconciler(store, config=config, clock=clock)


@pytest.fixture
def empty_reconciler(empty_store, config, clock):
    return RestoreReconciler(empty_store, config=config, clock=clock)


@pytest.fixture
def make_backup(make_backup_dict):
    def _make(*args, **kwargs):
        return BackupFile.model_validate(make_backup_dict(*args, **kwargs))
    return _make


def animals(count, farm_id=FARM_ID):
    return [{"id": f"a{index}", "farmId": farm_id, "animalNumber": f"OV-{index:02d}"} for index in range(count)]


class TestMerge:
    """Merge mode."""

    async def test_end_to_end_example(self, empty_store, empty_reconciler, make_backup):
        backup = make_backup({"animals": [{"id": "a1", "animalNumber": "OV-01", "birthDate": EXPORT_MS}]})

        result = await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.success
        assert result.errors == []
        assert result.counts == {
            "animals": 1, "breedingRecords": 0, "reminders": 0, "weightRecords": 0, "farmInvitations": 0
        }
        stored = empty_store.snapshot("animals")
        assert list(stored) == ["a1"]
        assert stored["a1"]["birthDate"] == millis_to_datetime(EXPORT_MS)
        assert datetime_to_millis(stored["a1"]["birthDate"]) == 1700000000000

    async def test_non_destructive_update(self, store, reconciler, make_backup):
        await store.create_document("animals", "a9", {"farmId": FARM_ID, "a": 1, "b": 2})
        backup = make_backup({"animals": [{"id": "a9", "farmId": FARM_ID, "a": 9}]})

        result = await reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.success
        assert store.snapshot("animals")["a9"] == {"farmId": FARM_ID, "a": 9, "b": 2}
        assert store.operations("update", "animals") == ["a9"]

    async def test_unmentioned_documents_are_kept(self, store, reconciler, make_backup):
        backup = make_backup({"animals": [{"id": "a3", "farmId": FARM_ID}]})

        await reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert set(store.snapshot("animals")) == {"a1", "a2", "a3"}
        assert store.operations("delete", "animals") == []

    async def test_idempotent(self, empty_store, empty_reconciler, make_backup):
        collections = {
            "animals": animals(3),
            "reminders": [{"id": "r1", "farmId": FARM_ID, "dueDate": EXPORT_MS}],
            "farmInvitations": [{"id": "i1", "farmId": FARM_ID, "email": "ana@example.com", "status": "accepted"}],
        }
        backup = make_backup(collections)

        await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE, operator_id=OPERATOR_ID)
        once = {name: empty_store.snapshot(name) for name in collections}
        second = await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE, operator_id=OPERATOR_ID)
        twice = {name: empty_store.snapshot(name) for name in collections}

        assert second.success
        assert once == twice
        assert len(twice["animals"]) == 3

    async def test_farm_is_field_updated(self, store, reconciler, make_backup):
        farm = {
            "name": "La Esperanza II",
            "ownerId": "intruder",
            "collaboratorsIds": [],
            "updatedAt": EXPORT_MS,
        }
        await reconciler.restore(make_backup(farm=farm), FARM_ID, RestoreMode.MERGE)

        stored = await store.get_document("farms", FARM_ID)
        assert stored["name"] == "La Esperanza II"
        assert stored["ownerId"] == OPERATOR_ID
        assert stored["collaboratorsIds"] == ["user_2"]
        assert stored["description"] == "Ovinos y caprinos"
        assert stored["updatedAt"] == millis_to_datetime(EXPORT_MS)

    async def test_records_move_to_target_farm(self, empty_store, empty_reconciler, make_backup):
        backup = make_backup({
            "animals": [{"id": "a1", "farmId": "farm_old", "farmerId": "user_old"}],
        }, farmId="farm_old")

        await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE, operator_id=OPERATOR_ID)

        stored = empty_store.snapshot("animals")["a1"]
        assert stored["farmId"] == FARM_ID
        assert stored["farmerId"] == OPERATOR_ID

    async def test_invitations_are_renewed(self, empty_store, empty_reconciler, make_backup):
        backup = make_backup({"farmInvitations": [{
            "id": "i1",
            "farmId": FARM_ID,
            "email": "ana@example.com",
            "status": "accepted",
            "userId": "user_3",
            "acceptedAt": EXPORT_MS,
        }]})

        await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE, operator_id=OPERATOR_ID)

        stored = empty_store.snapshot("farmInvitations")["i1"]
        expires_at = FIXED_NOW + timedelta(days=7)
        assert stored["status"] == "pending"
        assert stored["invitedBy"] == OPERATOR_ID
        assert stored["expiresAt"] == expires_at
        assert stored["token"] == invitation_token(FARM_ID, "i1", datetime_to_millis(expires_at))
        assert "userId" not in stored
        assert "acceptedAt" not in stored

    async def test_native_timestamps(self, config, clock, make_backup):
        store = FlakyStore(timestamp_factory=lambda millis: ("ts", millis))
        await seed_store(store, with_records=False)
        reconciler = RestoreReconciler(store, config=config, clock=clock)

        await reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE)

        assert store.snapshot("animals")["a1"]["birthDate"] == ("ts", EXPORT_MS)


class TestReplace:
    """Replace mode."""

    async def test_existing_documents_are_replaced(self, store, reconciler, make_backup):
        backup = make_backup({"animals": [{"id": "a1", "farmId": FARM_ID, "animalNumber": "OV-01"}]})

        result = await reconciler.restore(backup, FARM_ID, RestoreMode.REPLACE)

        assert result.success
        assert result.counts["animals"] == 1
        assert store.snapshot("animals") == {"a1": {"farmId": FARM_ID, "animalNumber": "OV-01"}}
        assert sorted(store.operations("delete", "animals")) == ["a1", "a2"]

    async def test_original_ids_are_kept(self, empty_store, empty_reconciler, make_backup):
        backup = make_backup({
            "animals": [{"id": "a1", "farmId": FARM_ID}, {"id": "a2", "farmId": FARM_ID, "motherId": "a1"}],
        })

        await empty_reconciler.restore(backup, FARM_ID, RestoreMode.REPLACE)

        stored = empty_store.snapshot("animals")
        assert set(stored) == {"a1", "a2"}
        assert stored["a2"]["motherId"] == "a1"

    async def test_other_farms_are_untouched(self, store, reconciler, make_backup):
        await store.create_document("animals", "x1", {"farmId": "farm_2"})

        await reconciler.restore(make_backup({"animals": []}), FARM_ID, RestoreMode.REPLACE)

        assert set(store.snapshot("animals")) == {"x1"}

    async def test_invitations_and_farm_are_exempt(self, store, reconciler, make_backup):
        collections = {name: [] for name in ("animals", "breedingRecords", "reminders", "weightRecords", "farmInvitations")}

        result = await reconciler.restore(make_backup(collections), FARM_ID, RestoreMode.REPLACE)

        assert result.success
        assert result.counts["farmInvitations"] == 0
        assert store.snapshot("farmInvitations")["i1"]["status"] == "accepted"
        assert store.operations("delete", "farmInvitations") == []
        assert store.operations("list", "farmInvitations") == []
        assert store.operations("delete", "farms") == []
        assert await store.get_document("farms", FARM_ID) is not None
        assert store.count("animals") == 0

    async def test_incoming_invitations_are_not_created(self, empty_store, empty_reconciler, make_backup):
        backup = make_backup({"farmInvitations": [{"id": "i9", "farmId": FARM_ID, "status": "pending"}]})

        result = await empty_reconciler.restore(backup, FARM_ID, RestoreMode.REPLACE)

        assert result.counts["farmInvitations"] == 0
        assert empty_store.count("farmInvitations") == 0


class TestFailureIsolation:
    """Failures are recorded per document and never abort the run."""

    async def test_one_failed_document(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail("create", "animals", "a5", RuntimeError("quota exceeded"))

        result = await empty_reconciler.restore(make_backup({"animals": animals(10)}), FARM_ID, RestoreMode.MERGE)

        assert result.counts["animals"] == 9
        assert not result.success
        assert result.errors == ["animals/a5: quota exceeded"]
        assert "a5" not in empty_store.snapshot("animals")

    async def test_failures_in_several_collections(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail("create", "animals", "a1")
        empty_store.fail("create", "reminders", "r1")
        backup = make_backup({
            "animals": animals(3),
            "reminders": [{"id": "r1", "farmId": FARM_ID}, {"id": "r2", "farmId": FARM_ID}],
        })

        result = await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.counts["animals"] == 2
        assert result.counts["reminders"] == 1
        assert [error.split(":")[0] for error in result.errors] == ["animals/a1", "reminders/r1"]

    async def test_listing_failure_skips_collection(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail("list", "animals", error=RuntimeError("index missing"))
        backup = make_backup({"animals": animals(2), "reminders": [{"id": "r1", "farmId": FARM_ID}]})

        result = await empty_reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.errors == ["animals: index missing"]
        assert result.counts["animals"] == 0
        assert result.counts["reminders"] == 1
        assert empty_store.operations("create", "animals") == []

    async def test_replace_listing_failure_does_not_create(self, store, reconciler, make_backup):
        store.fail("list", "animals", error=RuntimeError("index missing"))

        result = await reconciler.restore(make_backup({"animals": animals(2)}), FARM_ID, RestoreMode.REPLACE)

        assert result.errors == ["animals: index missing"]
        assert store.operations("create", "animals") == []

    async def test_delete_failure(self, store, reconciler, make_backup):
        store.fail("delete", "animals", "a2", RuntimeError("locked"))

        result = await reconciler.restore(make_backup({"animals": animals(1)}), FARM_ID, RestoreMode.REPLACE)

        assert result.errors == ["animals/a2: locked"]
        assert result.counts["animals"] == 1
        assert set(store.snapshot("animals")) == {"a0", "a2"}

    async def test_farm_update_failure(self, store, reconciler, make_backup):
        store.fail("update", "farms", FARM_ID, RuntimeError("denied"))

        result = await reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE)

        assert result.errors == [f"farms/{FARM_ID}: denied"]
        assert result.counts["animals"] == 1

    async def test_out_of_range_farm_date_is_kept(self, store, reconciler, make_backup):
        backup = make_backup(farm={"name": "La Esperanza", "createdAt": 10**17})

        result = await reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.success, result.errors
        assert result.counts["animals"] == 1
        stored = await store.get_document("farms", FARM_ID)
        assert stored["createdAt"] == 10**17

    async def test_farm_payload_failure(self, config, clock, make_backup):
        def timestamp(millis):
            if millis < 0:
                raise ValueError("timestamp before 1970")
            return ("ts", millis)

        store = FlakyStore(timestamp_factory=timestamp)
        await seed_store(store, with_records=False)
        reconciler = RestoreReconciler(store, config=config, clock=clock)
        backup = make_backup(farm={"name": "La Esperanza", "createdAt": -1})

        result = await reconciler.restore(backup, FARM_ID, RestoreMode.MERGE)

        assert result.errors == [f"farms/{FARM_ID}: timestamp before 1970"]
        assert result.counts["animals"] == 1
        assert store.operations("update", "farms") == []

    async def test_missing_target_farm(self, empty_store, empty_reconciler, make_backup):
        result = await empty_reconciler.restore(make_backup(), "farm_missing", RestoreMode.MERGE)

        assert not result.success
        assert result.errors[0].startswith("farms/farm_missing: ")
        assert result.counts["animals"] == 1

    async def test_transient_write_is_retried(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail_transiently("create", "animals", "a1", times=2)

        result = await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE)

        assert result.success
        assert empty_store.operations("create", "animals") == ["a1", "a1", "a1"]

    async def test_exhausted_retries_are_a_document_failure(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail_transiently("create", "animals", "a1", times=10)

        result = await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE)

        assert len(result.errors) == 1
        assert result.errors[0].startswith("animals/a1: store temporarily unavailable")


class TestProgress:
    """Progress reporting during restore."""

    async def test_monotonic_and_complete(self, empty_reconciler, make_backup):
        updates = []
        backup = make_backup({"animals": animals(60), "reminders": [{"id": "r1", "farmId": FARM_ID}]})

        await empty_reconciler.restore(
            backup, FARM_ID, RestoreMode.MERGE,
            progress_callback=lambda message, percent: updates.append((message, percent))
        )

        percents = [percent for _, percent in updates]
        messages = [message for message, _ in updates]
        assert percents == sorted(percents)
        assert percents[-1] == 100
        assert 100 not in percents[:-1]
        for label in ("animals", "breeding records", "reminders", "weight records", "invitations"):
            assert f"Restoring {label}..." in messages

    async def test_reaches_100_on_failure(self, empty_store, empty_reconciler, make_backup):
        empty_store.fail("create", "animals")
        updates = []

        result = await empty_reconciler.restore(
            make_backup(), FARM_ID, RestoreMode.MERGE,
            progress_callback=lambda message, percent: updates.append(percent)
        )

        assert not result.success
        assert updates[-1] == 100

    async def test_raising_callback_is_ignored(self, empty_reconciler, make_backup):
        def callback(message, percent):
            raise RuntimeError("UI went away")

        result = await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE, progress_callback=callback)
        assert result.success


class TestRunState:
    """Run state and mode handling."""

    async def test_run_moves_to_done(self, empty_reconciler, make_backup):
        run = RestoreRun(FARM_ID)

        result = await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE, run=run)

        assert isinstance(run.state, RunDone)
        assert run.last_result is result
        assert not run.is_running

    async def test_running_run_is_refused(self, empty_store, empty_reconciler, make_backup):
        run = RestoreRun(FARM_ID)
        run.begin(FIXED_NOW)

        with pytest.raises(RestoreInProgressError):
            await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE, run=run)
        assert empty_store.count("animals") == 0

    async def test_mode_from_string(self, empty_reconciler, make_backup):
        result = await empty_reconciler.restore(make_backup(), FARM_ID, "replace")
        assert result.mode == RestoreMode.REPLACE

    async def test_unknown_mode(self, empty_reconciler, make_backup):
        with pytest.raises(ValueError):
            await empty_reconciler.restore(make_backup(), FARM_ID, "overwrite")

    async def test_result_timing(self, empty_reconciler, make_backup):
        result = await empty_reconciler.restore(make_backup(), FARM_ID, RestoreMode.MERGE)

        assert result.started_at == FIXED_NOW
        assert result.execution_time_ms == 0
        assert result.farm_id == FARM_ID


class TestFarmBoundary:
    """Records are never written over another farm's documents."""

    @pytest.mark.parametrize("mode", [RestoreMode.MERGE, RestoreMode.REPLACE])
    async def test_id_held_by_another_farm(self, store, reconciler, make_backup, mode):
        await store.create_document("animals", "x1", {"farmId": "farm_2", "animalNumber": "ER-01"})
        backup = make_backup({"animals": [{"id": "x1", "farmId": FARM_ID, "animalNumber": "OV-99"}]})

        result = await reconciler.restore(backup, FARM_ID, mode)

        assert result.errors == ["animals/x1: belongs to another farm"]
        assert result.counts["animals"] == 0
        assert store.snapshot("animals")["x1"] == {"farmId": "farm_2", "animalNumber": "ER-01"}
        assert store.operations("create", "animals") == []

    async def test_own_ids_are_not_looked_up(self, store, reconciler, make_backup):
        backup = make_backup({"animals": [{"id": "a1", "farmId": FARM_ID, "animalNumber": "OV-01"}]})

        result = await reconciler.restore(backup, FARM_ID, RestoreMode.REPLACE)

        assert result.success
        assert store.operations("get", "animals") == []
        assert store.operations("create", "animals") == ["a1"]
